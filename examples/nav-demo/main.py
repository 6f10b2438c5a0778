"""
grid-astar Navigation Demo
Top-down view of a grid cast over box geometry, with agents walking A* paths.
"""

import sys
from dataclasses import dataclass

import pygame

from grid_astar import BoxWorld, GridBuilder, PathRunner
from grid_astar_actor import Navigator, NavigatorConfig

# --- Configuration ---
WIDTH, HEIGHT = 1024, 768
FPS = 60
TITLE = "grid-astar Navigation Demo"

WORLD_W, WORLD_H = 960.0, 640.0
OFFSET_X, OFFSET_Y = 32, 72
CELL_SIZE = 32.0
AGENT_SPEED = 140.0
AGENT_RADIUS = 9
LEDGE_HEIGHT = 50.0

# Colors
BG_COLOR = (26, 26, 46)
HUD_COLOR = (200, 200, 220)
WALL_COLOR = (70, 70, 90)
LOW_CELL_COLOR = (40, 90, 70)
HIGH_CELL_COLOR = (150, 190, 90)
STEP_COLOR = (90, 140, 200)
EDGE_COLOR = (200, 120, 60)
OCCUPIED_COLOR = (200, 60, 60)
DROP_COLOR = (255, 215, 0)
PATH_COLOR = (0, 255, 255)
TARGET_COLOR = (255, 0, 200)
AGENT_COLORS = [
    (255, 255, 255),
    (255, 160, 0),
    (180, 100, 255),
]


@dataclass(eq=False)
class Agent:
    name: str
    position: tuple[float, float, float]
    color: tuple[int, int, int]


def build_world() -> BoxWorld:
    world = BoxWorld()
    world.add((0.0, 0.0, -10.0), (WORLD_W, WORLD_H, 0.0))
    # Walls with gaps to walk around.
    world.add((288.0, 0.0, 0.0), (320.0, 448.0, 200.0))
    world.add((448.0, 192.0, 0.0), (480.0, WORLD_H, 200.0))
    # Raised ledge in the corner, reached by stairs and left by dropping.
    world.add((704.0, 0.0, 0.0), (WORLD_W, 160.0, LEDGE_HEIGHT))
    for i in range(4):
        world.add((576.0 + 32.0 * i, 0.0, 0.0), (704.0, 96.0, 10.0 * (i + 1)))
    return world


def to_screen(x: float, y: float) -> tuple[int, int]:
    return int(x) + OFFSET_X, int(y) + OFFSET_Y


def to_world(sx: int, sy: int) -> tuple[float, float]:
    return float(sx - OFFSET_X), float(sy - OFFSET_Y)


def cell_color(cell) -> tuple[int, int, int]:
    if cell.occupied:
        return OCCUPIED_COLOR
    if cell.tags.has("step"):
        return STEP_COLOR
    if cell.tags.has("edge"):
        return EDGE_COLOR
    t = max(0.0, min(1.0, cell.position[2] / LEDGE_HEIGHT))
    return tuple(int(lo + (hi - lo) * t) for lo, hi in zip(LOW_CELL_COLOR, HIGH_CELL_COLOR))


def move_agent(grid, agent: Agent, direction, dt: float) -> None:
    x, y, z = agent.position
    x += direction[0] * AGENT_SPEED * dt
    y += direction[1] * AGENT_SPEED * dt
    cell = grid.get_cell((x, y, z + grid.step_size))
    if cell is not None:
        z = cell.position[2]
    agent.position = (x, y, z)


def main():
    pygame.init()
    screen = pygame.display.set_mode((WIDTH, HEIGHT))
    pygame.display.set_caption(TITLE)
    pg_clock = pygame.time.Clock()
    font = pygame.font.SysFont("monospace", 14)

    # --- Grid setup ---
    world = build_world()
    grid = GridBuilder(cell_size=CELL_SIZE).create(world)
    runner = PathRunner(max_workers=2)

    agents: list[Agent] = []
    navigators: list[Navigator] = []
    for i, start in enumerate([(48.0, 48.0), (48.0, 592.0), (400.0, 560.0)]):
        cell = grid.get_cell((start[0], start[1], 1000.0), find_nearest=True)
        agent = Agent(f"agent-{i}", cell.position, AGENT_COLORS[i % len(AGENT_COLORS)])
        agents.append(agent)
        navigators.append(Navigator(grid, agent, runner=runner))

    # --- State ---
    selected = 0
    race = False
    show_connections = True
    paused = False
    running = True

    while running:
        dt = pg_clock.tick(FPS) / 1000.0

        # --- Events ---
        for event in pygame.event.get():
            if event.type == pygame.QUIT:
                running = False
            elif event.type == pygame.KEYDOWN:
                if event.key == pygame.K_ESCAPE:
                    running = False
                elif event.key == pygame.K_SPACE:
                    paused = not paused
                elif event.key == pygame.K_TAB:
                    selected = (selected + 1) % len(agents)
                elif event.key == pygame.K_r:
                    race = not race
                    for nav in navigators:
                        nav.config = NavigatorConfig(race=race)
                elif event.key == pygame.K_c:
                    show_connections = not show_connections
                elif event.key == pygame.K_f:
                    for i, nav in enumerate(navigators):
                        if i != selected:
                            nav.follow(agents[selected])
                elif event.key == pygame.K_s:
                    for nav in navigators:
                        nav.stop()
            elif event.type == pygame.MOUSEBUTTONDOWN:
                wx, wy = to_world(*event.pos)
                if event.button == 1:
                    navigators[selected].stop_following()
                    navigators[selected].navigate_to((wx, wy, 1000.0))

        # --- Update ---
        if not paused:
            for agent, nav in zip(agents, navigators):
                move_agent(grid, agent, nav.update(dt), dt)

        # --- Draw ---
        screen.fill(BG_COLOR)
        pygame.draw.rect(screen, WALL_COLOR, (OFFSET_X, OFFSET_Y, int(WORLD_W), int(WORLD_H)))

        # Only the highest cell of each stack is visible from above.
        for stack in grid.cells.values():
            cell = stack[0]
            sx, sy = to_screen(cell.position[0], cell.position[1])
            half = int(CELL_SIZE / 2) - 1
            pygame.draw.rect(screen, cell_color(cell), (sx - half, sy - half, half * 2, half * 2))

        if show_connections:
            for cell in grid.all_cells():
                for connection in cell.connections:
                    a = to_screen(cell.position[0], cell.position[1])
                    b = to_screen(connection.cell.position[0], connection.cell.position[1])
                    pygame.draw.line(screen, DROP_COLOR, a, b, 1)
                    pygame.draw.circle(screen, DROP_COLOR, b, 3)

        for i, (agent, nav) in enumerate(zip(agents, navigators)):
            path = nav.path
            if path is not None and nav.is_following_path:
                points = [to_screen(agent.position[0], agent.position[1])]
                points += [to_screen(w.position[0], w.position[1]) for w in list(path)[nav.path_index + 1:]]
                if len(points) > 1:
                    pygame.draw.lines(screen, PATH_COLOR, False, points, 2)
            if nav.target_cell is not None and not nav.arrived:
                tx, ty = to_screen(nav.target_cell.position[0], nav.target_cell.position[1])
                pygame.draw.circle(screen, TARGET_COLOR, (tx, ty), 6, 2)

            ax, ay = to_screen(agent.position[0], agent.position[1])
            pygame.draw.circle(screen, agent.color, (ax, ay), AGENT_RADIUS)
            if i == selected:
                pygame.draw.circle(screen, TARGET_COLOR, (ax, ay), AGENT_RADIUS + 3, 2)

        # --- HUD ---
        fps_val = pg_clock.get_fps()
        nav = navigators[selected]
        status = nav.path.status.value if nav.path is not None else "-"
        pending = "  [SEARCHING]" if nav.pending is not None else ""
        pause_str = "  [PAUSED]" if paused else ""

        hud_lines = [
            f"Cells: {grid.cell_count}   FPS: {fps_val:.0f}   Agent: {agents[selected].name}"
            f"   Path: {status}   Race: {'ON' if race else 'OFF'}{pending}{pause_str}",
            "LClick=Go  Tab=Select  F=Follow  S=Stop  R=Race  C=Connections  Space=Pause  Esc=Quit",
        ]
        for i, line in enumerate(hud_lines):
            surf = font.render(line, True, HUD_COLOR)
            screen.blit(surf, (10, 8 + i * 20))

        pygame.display.flip()

    runner.shutdown()
    pygame.quit()
    sys.exit()


if __name__ == "__main__":
    main()
