from __future__ import annotations

import argparse
import logging
import random
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Iterable, Sequence

from config import GameConfig, configure_logging
from maze import Direction, Maze, Position, build_maze
from player import (
    InputEdge,
    MotionRates,
    PlayerState,
    advance,
    apply_input,
    spawn_player,
    visual_heading,
    visual_position,
)

logger = logging.getLogger(__name__)


class LevelNotStartedError(RuntimeError):
    """Raised when player input or ticks arrive before any level exists."""


class CameraMode(Enum):
    FIRST_PERSON = "first_person"
    OVERVIEW = "overview"


_EDGE_VERBS = {
    "right": InputEdge.TURN_RIGHT,
    "turn-right": InputEdge.TURN_RIGHT,
    "left": InputEdge.TURN_LEFT,
    "turn-left": InputEdge.TURN_LEFT,
    "up": InputEdge.FORWARD,
    "forward": InputEdge.FORWARD,
    "down": InputEdge.BACKWARD,
    "back": InputEdge.BACKWARD,
    "backward": InputEdge.BACKWARD,
}

_FACING_GLYPH = {
    Direction.N: "^",
    Direction.E: ">",
    Direction.S: "v",
    Direction.W: "<",
}


@dataclass(frozen=True)
class Command:
    """
    Normalized command object consumed by the engine.
    """

    verb: str
    args: list[str] = field(default_factory=list)


@dataclass
class GameView:
    """
    Presentation-facing projection of the current level, sampled every frame.
    """

    level_id: str | None
    seed: int
    pos: dict[str, int]
    facing: str
    action: str
    progress: float
    heading: float
    translation: tuple[float, float]
    camera: str
    open_sides: list[str]
    metrics: dict[str, Any]


@dataclass
class GameOutput:
    """
    Wrapper for state + user-facing messages from engine commands.
    """

    view: GameView | None
    messages: list[str] = field(default_factory=list)
    did_persist: bool = False


@dataclass
class LevelContext:
    """Everything owned by a single level; replaced wholesale on reset."""

    maze: Maze
    player: PlayerState
    level_id: str | None = None
    moves: int = 0
    turns: int = 0
    bumps: int = 0
    elapsed: float = 0.0
    run_recorded: bool = False


class GameEngine:
    def __init__(
        self,
        *,
        config: GameConfig | None = None,
        repo: Any = None,
        rng: random.Random | None = None,
    ):
        self.config = config or GameConfig()
        self.repo = repo
        self.rates = MotionRates.from_config(self.config)
        self.camera = CameraMode.FIRST_PERSON
        self.level: LevelContext | None = None
        # Spawn facing is drawn here, never from the maze's carving rng.
        self._rng = rng or random.Random()
        self._pending: list[InputEdge] = []

    # Level lifecycle
    def start_level(self, seed: int | None = None) -> GameView:
        maze = build_maze(
            width=self.config.width,
            height=self.config.height,
            seed=self.config.level_seed(seed),
        )
        # The new level must be registered before the outgoing run is closed.
        level_id = self._register_level(maze)
        if self.level is not None:
            self._record_run()
        self._install(maze, level_id=level_id)
        return self.view()

    def replay_level(self, level_id: str) -> GameView:
        if self.repo is None:
            raise KeyError(f"No repository to load level {level_id}")
        record = self.repo.get_level(level_id)
        if record is None:
            raise KeyError(f"Unknown level_id: {level_id}")
        if self.level is not None:
            self._record_run()
        maze = build_maze(width=record["width"], height=record["height"], seed=record["seed"])
        self._install(maze, level_id=record["id"])
        return self.view()

    def _install(self, maze: Maze, level_id: str | None) -> None:
        self.level = LevelContext(
            maze=maze,
            player=spawn_player(maze, self._rng),
            level_id=level_id,
        )
        self.camera = CameraMode.FIRST_PERSON
        self._pending.clear()
        logger.info(
            "Level started: %dx%d seed=%d facing=%s",
            maze.width,
            maze.height,
            maze.seed,
            self.level.player.direction.name,
        )
        if self.config.debug:
            logger.debug("\n%s", render_map(maze, self.level.player))

    def _register_level(self, maze: Maze) -> str | None:
        if self.repo is None:
            return None
        record = self.repo.create_level(
            seed=maze.seed,
            width=maze.width,
            height=maze.height,
            start={"x": maze.start.x, "y": maze.start.y},
        )
        return record["id"]

    def _metrics(self) -> dict[str, Any]:
        level = self.level
        return {
            "moves": level.moves,
            "turns": level.turns,
            "bumps": level.bumps,
            "elapsed_seconds": round(level.elapsed, 3),
        }

    def _record_run(self) -> bool:
        level = self.level
        if self.repo is None or level is None or level.level_id is None or level.run_recorded:
            return False
        self.repo.record_run(level_id=level.level_id, metrics=self._metrics())
        level.run_recorded = True
        return True

    # Precondition guard for calls that need a live level.
    def _require_level(self, operation: str) -> bool:
        if self.level is not None:
            return True
        if self.config.debug:
            raise LevelNotStartedError(f"{operation} called before start_level()")
        logger.warning("%s ignored: no level has been started", operation)
        return False

    # Per-frame driving
    def tick(self, elapsed: float, pressed: Iterable[InputEdge] = ()) -> GameView | None:
        """Run one frame: commit input first, then advance the animation."""
        if not self._require_level("tick"):
            return None
        level = self.level
        edges = [*self._pending, *pressed]
        self._pending.clear()

        if edges and self.camera is CameraMode.FIRST_PERSON:
            self._apply_edges(edges)

        advance(level.player, elapsed, self.rates)
        level.elapsed += elapsed
        return self.view()

    def _apply_edges(self, edges: Sequence[InputEdge]) -> None:
        level = self.level
        player = level.player
        if not player.is_idle():
            return
        if not apply_input(player, level.maze, edges, on_blocked=self._count_bump):
            return
        if player.is_turning():
            level.turns += 1
        else:
            level.moves += 1

    def _count_bump(self, direction: Direction) -> None:
        self.level.bumps += 1

    def toggle_overview(self) -> CameraMode:
        if self.camera is CameraMode.FIRST_PERSON:
            self.camera = CameraMode.OVERVIEW
        else:
            self.camera = CameraMode.FIRST_PERSON
        return self.camera

    def handle(self, command: Command) -> GameOutput:
        verb = (command.verb or "").strip().lower()
        args = command.args or []

        if verb == "reset":
            self.start_level()
            return GameOutput(view=self.view(), messages=["New level."])

        if verb == "replay":
            if not args:
                return GameOutput(view=self._safe_view(), messages=["Missing level id."])
            try:
                self.replay_level(args[0])
            except KeyError:
                return GameOutput(view=self._safe_view(), messages=["Unknown level."])
            return GameOutput(view=self.view(), messages=["Level replayed."])

        if not self._require_level(f"command {verb!r}"):
            return GameOutput(view=None, messages=["No level started."])

        if verb in {"look", "map"}:
            return GameOutput(view=self.view())

        if verb == "overview":
            mode = self.toggle_overview()
            return GameOutput(view=self.view(), messages=[f"Camera: {mode.value}."])

        if verb == "save":
            if self.repo is None:
                return GameOutput(view=self.view(), messages=["No repository configured."])
            did_persist = self._record_run()
            message = "Run saved." if did_persist else "Run already saved."
            return GameOutput(view=self.view(), messages=[message], did_persist=did_persist)

        edge = _EDGE_VERBS.get(verb)
        if edge is None:
            return GameOutput(view=self.view(), messages=["Unknown command."])

        # Edge-triggered: queued for the next tick and consumed once.
        self._pending.append(edge)
        return GameOutput(view=self.view())

    def _safe_view(self) -> GameView | None:
        return self.view() if self.level is not None else None

    def view(self) -> GameView:
        if self.level is None:
            raise LevelNotStartedError("view() called before start_level()")
        level = self.level
        player = level.player
        return GameView(
            level_id=level.level_id,
            seed=level.maze.seed,
            pos={"x": player.position.x, "y": player.position.y},
            facing=player.direction.name,
            action=player.action.value,
            progress=player.progress,
            heading=visual_heading(player, self.rates),
            translation=visual_position(player, self.rates),
            camera=self.camera.value,
            open_sides=[d.name for d in level.maze.open_sides(player.position)],
            metrics=self._metrics(),
        )


def render_map(
    maze: Maze,
    player: PlayerState | None = None,
    *,
    visited: set[Position] | None = None,
    reveal_all: bool = True,
) -> str:
    """ASCII dump of the grid, north at the top. Debug aid only."""
    lines = []
    for y in range(maze.height):
        row = []
        for x in range(maze.width):
            pos = Position(x=x, y=y)
            if player is not None and pos == player.position:
                row.append(_FACING_GLYPH[player.direction])
            elif not reveal_all and (visited is None or pos not in visited):
                row.append("?")
            elif maze.is_wall(pos):
                row.append("#")
            else:
                row.append(" ")
        lines.append("".join(row))
    return "\n".join(lines)


def main(argv: Sequence[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Generate a maze level and print it.")
    parser.add_argument("--seed", type=int, default=None)
    parser.add_argument("--width", type=int, default=None)
    parser.add_argument("--height", type=int, default=None)
    parser.add_argument("--db", default=None, help="level ledger (.db for SQLite, else JSON)")
    parser.add_argument("--debug", action="store_true")
    args = parser.parse_args(argv)

    config = GameConfig.from_env()
    overrides = {
        key: value
        for key, value in (("width", args.width), ("height", args.height), ("seed", args.seed))
        if value is not None
    }
    if args.debug:
        overrides["debug"] = True
    config = replace(config, **overrides)
    configure_logging(config)

    repo = None
    if args.db:
        from db import open_repo

        repo = open_repo(args.db)

    engine = GameEngine(config=config, repo=repo)
    view = engine.start_level()
    print(render_map(engine.level.maze, engine.level.player))
    print(f"seed={view.seed} level={view.level_id or '-'} facing={view.facing}")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
