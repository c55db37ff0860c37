from __future__ import annotations

import logging
import math
import os
from dataclasses import dataclass, replace
from typing import Mapping

# Map size in grid cells (outer wall ring included).
MAP_GRIDS_WIDTH = 51
MAP_GRIDS_HEIGHT = 51

# Fixed seed used for every level while debugging.
DEBUG_SEED = 1234567890

# Seeds live in a signed 64-bit SQLite INTEGER column.
SEED_LIMIT = 2**63

# Player animation speed multipliers.
PLAYER_TURN_COEF = 3.5
PLAYER_MOVE_COEF = 3.5

UNIT_TURN = math.pi / 2
UNIT_MOVE = 1.0

LOG_LEVEL_DEV = "WARNING"
LOG_LEVEL_REL = "ERROR"

_TRUTHY = {"1", "true", "yes", "on"}
_FALSY = {"0", "false", "no", "off", ""}


@dataclass(frozen=True)
class GameConfig:
    width: int = MAP_GRIDS_WIDTH
    height: int = MAP_GRIDS_HEIGHT
    debug: bool = False
    debug_seed: int = DEBUG_SEED
    seed: int | None = None
    turn_coef: float = PLAYER_TURN_COEF
    move_coef: float = PLAYER_MOVE_COEF
    log_level: str | None = None

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> "GameConfig":
        """Build a config from MAZE_* environment variables.

        Unset variables keep their defaults; malformed values raise ValueError.
        """
        env = os.environ if environ is None else environ
        cfg = cls()
        if "MAZE_WIDTH" in env:
            cfg = replace(cfg, width=_parse_int("MAZE_WIDTH", env["MAZE_WIDTH"]))
        if "MAZE_HEIGHT" in env:
            cfg = replace(cfg, height=_parse_int("MAZE_HEIGHT", env["MAZE_HEIGHT"]))
        if "MAZE_DEBUG" in env:
            cfg = replace(cfg, debug=_parse_bool("MAZE_DEBUG", env["MAZE_DEBUG"]))
        if "MAZE_SEED" in env:
            cfg = replace(cfg, seed=_parse_seed("MAZE_SEED", env["MAZE_SEED"]))
        if env.get("MAZE_LOG_LEVEL"):
            cfg = replace(cfg, log_level=env["MAZE_LOG_LEVEL"].strip().upper())
        return cfg

    def level_seed(self, requested: int | None = None) -> int | None:
        if requested is not None:
            return requested
        if self.seed is not None:
            return self.seed
        if self.debug:
            return self.debug_seed
        # None lets the maze draw a seed from process entropy.
        return None

    @property
    def effective_log_level(self) -> str:
        if self.log_level:
            return self.log_level
        return LOG_LEVEL_DEV if self.debug else LOG_LEVEL_REL


def configure_logging(config: GameConfig) -> None:
    level = logging.getLevelName(config.effective_log_level)
    if not isinstance(level, int):
        raise ValueError(f"Unknown log level: {config.effective_log_level}")
    logging.basicConfig(
        level=level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    logging.getLogger().setLevel(level)


def _parse_int(name: str, raw: str) -> int:
    try:
        return int(raw.strip())
    except ValueError:
        raise ValueError(f"{name} must be an integer, got {raw!r}") from None


def _parse_seed(name: str, raw: str) -> int:
    seed = _parse_int(name, raw)
    if not 0 <= seed < SEED_LIMIT:
        raise ValueError(f"{name} must be in [0, 2**63), got {seed}")
    return seed


def _parse_bool(name: str, raw: str) -> bool:
    value = raw.strip().lower()
    if value in _TRUTHY:
        return True
    if value in _FALSY:
        return False
    raise ValueError(f"{name} must be a boolean flag, got {raw!r}")
