from __future__ import annotations

import logging
import math
import random
from dataclasses import dataclass
from enum import Enum, IntFlag
from typing import Iterator

from config import MAP_GRIDS_HEIGHT, MAP_GRIDS_WIDTH, SEED_LIMIT

logger = logging.getLogger(__name__)


class Direction(Enum):
    N = (0, -1)
    E = (1, 0)
    S = (0, 1)
    W = (-1, 0)

    @property
    def delta(self) -> tuple[int, int]:
        return self.value

    @property
    def opposite(self) -> "Direction":
        return {
            Direction.N: Direction.S,
            Direction.S: Direction.N,
            Direction.E: Direction.W,
            Direction.W: Direction.E,
        }[self]

    @property
    def heading(self) -> float:
        """Yaw in radians, clockwise from North."""
        return _CLOCKWISE.index(self) * (math.pi / 2)

    def turn_right(self) -> "Direction":
        return _CLOCKWISE[(_CLOCKWISE.index(self) + 1) % 4]

    def turn_left(self) -> "Direction":
        return _CLOCKWISE[(_CLOCKWISE.index(self) - 1) % 4]


_CLOCKWISE = (Direction.N, Direction.E, Direction.S, Direction.W)

# Scan order for neighbour probing. Generation depends on it, so it must not change.
SIDES = (Direction.S, Direction.E, Direction.W, Direction.N)


@dataclass(frozen=True)
class Position:
    x: int
    y: int

    def __add__(self, direction: Direction) -> "Position":
        dx, dy = direction.delta
        return Position(x=self.x + dx, y=self.y + dy)


class CellFlag(IntFlag):
    UNDEFINED = 0
    OPEN = 1
    WALL = 2
    DEAD_END = 4


class Maze:
    def __init__(
        self,
        width: int = MAP_GRIDS_WIDTH,
        height: int = MAP_GRIDS_HEIGHT,
        seed: int | None = None,
    ):
        if width < 3 or height < 3:
            raise ValueError(f"Maze must be at least 3x3, got {width}x{height}")
        if seed is None:
            seed = random.SystemRandom().getrandbits(63)
        elif not 0 <= seed < SEED_LIMIT:
            raise ValueError(f"Seed must be in [0, 2**63), got {seed}")
        self.width = width
        self.height = height
        self.seed = seed
        self.rng = random.Random(seed)
        self.start = Position(x=width // 2, y=height // 2)
        self._matrix = [[CellFlag.UNDEFINED] * height for _ in range(width)]

    def in_bounds(self, pos: Position) -> bool:
        return 0 <= pos.x < self.width and 0 <= pos.y < self.height

    def in_interior(self, pos: Position) -> bool:
        return 1 <= pos.x < self.width - 1 and 1 <= pos.y < self.height - 1

    def cell(self, pos: Position) -> CellFlag:
        if not self.in_bounds(pos):
            raise ValueError(f"Out of bounds position: {pos}")
        return self._matrix[pos.x][pos.y]

    # Queries are bounds-safe: everything outside the grid is solid wall.
    def is_wall(self, pos: Position) -> bool:
        if not self.in_bounds(pos):
            return True
        return bool(self._matrix[pos.x][pos.y] & CellFlag.WALL)

    def is_open(self, pos: Position) -> bool:
        if not self.in_bounds(pos):
            return False
        return bool(self._matrix[pos.x][pos.y] & CellFlag.OPEN)

    def is_dead_end(self, pos: Position) -> bool:
        if not self.in_bounds(pos):
            return False
        return bool(self._matrix[pos.x][pos.y] & CellFlag.DEAD_END)

    def open_sides(self, pos: Position) -> list[Direction]:
        return [d for d in SIDES if self.is_open(pos + d)]

    def open_cells(self) -> Iterator[Position]:
        for x in range(self.width):
            for y in range(self.height):
                if self._matrix[x][y] & CellFlag.OPEN:
                    yield Position(x=x, y=y)

    def grid_bytes(self) -> bytes:
        return bytes(int(flag) for column in self._matrix for flag in column)

    # Mutators below are for the generator only.
    def fill_with_walls(self) -> None:
        for column in self._matrix:
            column[:] = [CellFlag.WALL] * self.height

    def set_open(self, pos: Position) -> None:
        if not self.in_bounds(pos):
            return
        # Replaces terrain and clears any flags.
        self._matrix[pos.x][pos.y] = CellFlag.OPEN

    def add_dead_end_flag(self, pos: Position) -> None:
        if not self.in_bounds(pos):
            return
        self._matrix[pos.x][pos.y] |= CellFlag.DEAD_END


def dig_footprint(cell: Position, direction: Direction) -> tuple[Position, ...]:
    """Cells that must still be wall before `cell` may be dug when entered heading `direction`.

    Ahead, ahead-left, ahead-right, left and right of the candidate. Keeping
    these solid means a dug cell touches only the cell it was dug from, so
    corridors stay one cell wide and can never close a loop.
    """
    left = direction.turn_left()
    right = direction.turn_right()
    ahead = cell + direction
    return (ahead, ahead + left, ahead + right, cell + left, cell + right)


def is_diggable(maze: Maze, cell: Position, direction: Direction) -> bool:
    return all(maze.is_wall(p) for p in dig_footprint(cell, direction))


def generate_maze(maze: Maze) -> Maze:
    """Carve a perfect maze in place, starting from `maze.start`.

    Randomized depth-first digging without a stack: open cells that are not yet
    marked DEAD_END form the current path, so backtracking just follows the
    single live open neighbour and marks the cell it leaves behind.
    """
    maze.fill_with_walls()
    cell = maze.start
    maze.set_open(cell)

    steps = 0
    while True:
        steps += 1
        diggable: list[Position] = []
        backtrack: Position | None = None

        for d in SIDES:
            nxt = cell + d
            # The outer ring is never dug.
            if not maze.in_interior(nxt):
                continue
            if maze.is_wall(nxt) and is_diggable(maze, nxt, d):
                diggable.append(nxt)
            elif maze.is_open(nxt) and not maze.is_dead_end(nxt):
                backtrack = nxt

        if diggable:
            cell = diggable[maze.rng.randrange(len(diggable))]
            maze.set_open(cell)
            continue
        if backtrack is None:
            break
        maze.add_dead_end_flag(cell)
        cell = backtrack

    logger.debug(
        "Generated %dx%d maze (seed=%d): %d open cells in %d steps",
        maze.width,
        maze.height,
        maze.seed,
        sum(1 for _ in maze.open_cells()),
        steps,
    )
    return maze


def build_maze(
    width: int = MAP_GRIDS_WIDTH,
    height: int = MAP_GRIDS_HEIGHT,
    seed: int | None = None,
) -> Maze:
    return generate_maze(Maze(width=width, height=height, seed=seed))
