from __future__ import annotations

import logging
import math
import random
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Iterable

from config import GameConfig, UNIT_MOVE, UNIT_TURN
from maze import Direction, Maze, Position

logger = logging.getLogger(__name__)


class Action(Enum):
    IDLE = "idle"
    TURNING_RIGHT = "turning_right"
    TURNING_LEFT = "turning_left"
    MOVING_FORWARD = "moving_forward"
    MOVING_BACKWARD = "moving_backward"


class InputEdge(Enum):
    TURN_RIGHT = "turn_right"
    TURN_LEFT = "turn_left"
    FORWARD = "forward"
    BACKWARD = "backward"


@dataclass
class PlayerState:
    """
    Committed position/facing plus the animation in flight.

    position and direction change the moment an action is accepted; action and
    progress only describe how far the visible transform has caught up.
    """

    position: Position
    direction: Direction
    action: Action = Action.IDLE
    progress: float = 0.0

    def is_idle(self) -> bool:
        return self.action is Action.IDLE

    def is_turning(self) -> bool:
        return self.action in (Action.TURNING_RIGHT, Action.TURNING_LEFT)

    def is_moving(self) -> bool:
        return self.action in (Action.MOVING_FORWARD, Action.MOVING_BACKWARD)


@dataclass(frozen=True)
class MotionRates:
    angular: float
    linear: float
    unit_turn: float = UNIT_TURN
    unit_move: float = UNIT_MOVE

    @classmethod
    def from_config(cls, config: GameConfig) -> "MotionRates":
        return cls(
            angular=UNIT_TURN * config.turn_coef,
            linear=UNIT_MOVE * config.move_coef,
        )


def spawn_player(maze: Maze, rng: random.Random | None = None) -> PlayerState:
    """Place a new player on the maze start, facing a random open side."""
    rng = rng or random.Random()
    sides = maze.open_sides(maze.start)
    direction = rng.choice(sides) if sides else Direction.N
    return PlayerState(position=maze.start, direction=direction)


def apply_input(
    state: PlayerState,
    maze: Maze,
    edges: Iterable[InputEdge],
    on_blocked: Callable[[Direction], None] | None = None,
) -> bool:
    """Commit the first input edge that produces a transition.

    Returns True when the state changed. Input is ignored while an action is
    still animating; a step into a wall is dropped (reported to on_blocked with
    the direction of travel) and the next edge is tried.
    """
    if not state.is_idle():
        return False

    for edge in edges:
        if edge is InputEdge.TURN_RIGHT:
            state.direction = state.direction.turn_right()
            state.action = Action.TURNING_RIGHT
        elif edge is InputEdge.TURN_LEFT:
            state.direction = state.direction.turn_left()
            state.action = Action.TURNING_LEFT
        elif edge is InputEdge.FORWARD:
            if not _try_step(state, maze, state.direction, on_blocked):
                continue
            state.action = Action.MOVING_FORWARD
        elif edge is InputEdge.BACKWARD:
            if not _try_step(state, maze, state.direction.opposite, on_blocked):
                continue
            state.action = Action.MOVING_BACKWARD
        else:
            continue
        state.progress = 0.0
        return True
    return False


def _try_step(
    state: PlayerState,
    maze: Maze,
    direction: Direction,
    on_blocked: Callable[[Direction], None] | None,
) -> bool:
    target = state.position + direction
    if not maze.is_open(target):
        logger.debug("Blocked step from %s toward %s", state.position, direction.name)
        if on_blocked is not None:
            on_blocked(direction)
        return False
    state.position = target
    return True


def advance_turn(state: PlayerState, elapsed: float, rates: MotionRates) -> bool:
    """Advance a turn animation; returns True on the tick it snaps back to idle."""
    if not state.is_turning():
        return False
    return _accumulate(state, elapsed * rates.angular, rates.unit_turn, elapsed)


def advance_move(state: PlayerState, elapsed: float, rates: MotionRates) -> bool:
    """Advance a step animation; returns True on the tick it snaps back to idle."""
    if not state.is_moving():
        return False
    return _accumulate(state, elapsed * rates.linear, rates.unit_move, elapsed)


def advance(state: PlayerState, elapsed: float, rates: MotionRates) -> bool:
    return advance_turn(state, elapsed, rates) or advance_move(state, elapsed, rates)


def _accumulate(state: PlayerState, delta: float, unit: float, elapsed: float) -> bool:
    if elapsed < 0:
        raise ValueError(f"elapsed time must be non-negative, got {elapsed}")
    state.progress += delta
    # Equal elapsed slices can sum to a hair under the threshold.
    if state.progress < unit and not math.isclose(state.progress, unit, rel_tol=1e-9):
        return False
    state.progress = 0.0
    state.action = Action.IDLE
    return True


def visual_heading(state: PlayerState, rates: MotionRates) -> float:
    """Displayed yaw (radians, clockwise from North) for the current frame."""
    target = state.direction.heading
    remaining = rates.unit_turn - state.progress
    if state.action is Action.TURNING_RIGHT:
        return target - remaining
    if state.action is Action.TURNING_LEFT:
        return target + remaining
    return target


def visual_position(state: PlayerState, rates: MotionRates) -> tuple[float, float]:
    """Displayed (x, y) for the current frame, lagging behind the committed cell."""
    x, y = float(state.position.x), float(state.position.y)
    if state.action is Action.MOVING_FORWARD:
        travel = state.direction
    elif state.action is Action.MOVING_BACKWARD:
        travel = state.direction.opposite
    else:
        return x, y
    remaining = rates.unit_move - state.progress
    dx, dy = travel.delta
    return x - dx * remaining, y - dy * remaining
