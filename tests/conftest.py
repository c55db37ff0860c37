import importlib
import json
from collections import deque
from pathlib import Path
from typing import Any

import pytest


def import_required(module_name: str):
    """
    Import a project module with a clearer failure message than ModuleNotFoundError.
    """
    try:
        return importlib.import_module(module_name)
    except ModuleNotFoundError as e:
        pytest.fail(
            f"Required module '{module_name}.py' could not be imported. "
            f"Original error: {e}"
        )


@pytest.fixture
def maze_module():
    return import_required("maze")


@pytest.fixture
def player_module():
    return import_required("player")


@pytest.fixture
def db_module():
    return import_required("db")


@pytest.fixture
def repo_path(tmp_path) -> Path:
    return tmp_path / "levels.json"


@pytest.fixture
def repo(repo_path, db_module):
    return db_module.JsonLevelRepository(repo_path)


@pytest.fixture
def corridor_maze(maze_module):
    """
    Hand-carved 7x5 maze, start at (3, 2):

        #######
        ###.###
        #.....#
        #######
        #######
    """
    Position = maze_module.Position
    maze = maze_module.Maze(width=7, height=5, seed=0)
    maze.fill_with_walls()
    for x in range(1, 6):
        maze.set_open(Position(x=x, y=2))
    maze.set_open(Position(x=3, y=1))
    return maze


def all_positions(maze_mod, maze_obj):
    for x in range(maze_obj.width):
        for y in range(maze_obj.height):
            yield maze_mod.Position(x=x, y=y)


def open_graph(maze_mod, maze_obj):
    """Return (open cells, undirected 4-neighbour edges between open cells)."""
    cells = set(maze_obj.open_cells())
    edges = set()
    for pos in cells:
        for d in (maze_mod.Direction.E, maze_mod.Direction.S):
            nxt = pos + d
            if nxt in cells:
                edges.add((pos, nxt))
    return cells, edges


def reachable_from(maze_mod, maze_obj, start):
    seen = {start}
    q = deque([start])
    while q:
        cur = q.popleft()
        for d in maze_mod.Direction:
            nxt = cur + d
            if nxt in seen or not maze_obj.is_open(nxt):
                continue
            seen.add(nxt)
            q.append(nxt)
    return seen


def read_json(path: Path) -> dict[str, Any]:
    return json.loads(path.read_text(encoding="utf-8"))
