from __future__ import annotations

import json
import logging
from dataclasses import dataclass, asdict
from datetime import datetime, timezone
from pathlib import Path
from typing import Any
from uuid import uuid4

from sqlmodel import Field, Session, SQLModel, create_engine, select

logger = logging.getLogger(__name__)


def _utc_now_iso() -> str:
    return datetime.now(timezone.utc).replace(microsecond=0).isoformat().replace("+00:00", "Z")


def _as_record(obj: Any) -> Any:
    # Return dicts as-is; convert dataclasses to dicts if needed.
    if isinstance(obj, dict):
        return obj
    try:
        return asdict(obj)
    except TypeError:
        return obj


def _run_sort_key(run: dict[str, Any]) -> tuple[Any, Any]:
    metrics = run.get("metrics", {})
    return (metrics.get("moves", float("inf")), metrics.get("elapsed_seconds", float("inf")))


@dataclass
class LevelRecord:
    id: str
    seed: int
    width: int
    height: int
    start: dict[str, int]
    created_at: str


@dataclass
class RunRecord:
    id: str
    level_id: str
    metrics: dict[str, Any]
    created_at: str


class JsonLevelRepository:
    def __init__(self, path: str | Path, schema_version: int = 1):
        self.path = Path(path)
        self.schema_version = schema_version
        self._ensure_store()

    def _empty_doc(self) -> dict[str, Any]:
        return {
            "schema_version": self.schema_version,
            "levels": {},
            "runs": {},
        }

    def _ensure_store(self) -> None:
        if self.path.exists():
            return
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self._write_doc(self._empty_doc())

    def _read_doc(self) -> dict[str, Any]:
        if not self.path.exists():
            return self._empty_doc()
        raw = self.path.read_text(encoding="utf-8").strip()
        if not raw:
            return self._empty_doc()
        doc = json.loads(raw)
        # Backfill missing keys if needed.
        doc.setdefault("schema_version", self.schema_version)
        doc.setdefault("levels", {})
        doc.setdefault("runs", {})
        return doc

    def _write_doc(self, doc: dict[str, Any]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self.path.with_suffix(self.path.suffix + ".tmp")
        tmp_path.write_text(json.dumps(doc, indent=2, sort_keys=True), encoding="utf-8")
        tmp_path.replace(self.path)

    def _save_doc(self, doc: dict[str, Any]) -> None:
        doc["schema_version"] = self.schema_version
        self._write_doc(doc)

    # Level ops
    def create_level(self, seed: int, width: int, height: int, start: dict[str, int]) -> dict[str, Any]:
        doc = self._read_doc()
        created = LevelRecord(
            id=str(uuid4()),
            seed=seed,
            width=width,
            height=height,
            start=dict(start),
            created_at=_utc_now_iso(),
        )
        record = _as_record(created)
        doc["levels"][record["id"]] = record
        self._save_doc(doc)
        return record

    def get_level(self, level_id: str) -> dict[str, Any] | None:
        doc = self._read_doc()
        return doc["levels"].get(level_id)

    def recent_levels(self, limit: int = 10) -> list[dict[str, Any]]:
        doc = self._read_doc()
        items = sorted(doc["levels"].values(), key=lambda lv: lv["created_at"], reverse=True)
        return items[:limit]

    # Run ops
    def record_run(self, level_id: str, metrics: dict[str, Any]) -> dict[str, Any]:
        doc = self._read_doc()
        if level_id not in doc["levels"]:
            raise KeyError(f"Unknown level_id: {level_id}")
        created = RunRecord(
            id=str(uuid4()),
            level_id=level_id,
            metrics=metrics,
            created_at=_utc_now_iso(),
        )
        record = _as_record(created)
        doc["runs"][record["id"]] = record
        self._save_doc(doc)
        return record

    def runs_for_level(self, level_id: str, limit: int = 10) -> list[dict[str, Any]]:
        doc = self._read_doc()
        items = [r for r in doc["runs"].values() if r.get("level_id") == level_id]
        items.sort(key=_run_sort_key)
        return items[:limit]


# ---------------------------------------------------------------------------
# SQLModel tables for SqliteLevelRepository
# ---------------------------------------------------------------------------


class LevelModel(SQLModel, table=True):
    __tablename__ = "levels"
    id: str = Field(primary_key=True)
    seed: int
    width: int
    height: int
    start_x: int
    start_y: int
    created_at: str


class RunModel(SQLModel, table=True):
    __tablename__ = "runs"
    id: str = Field(primary_key=True)
    level_id: str = Field(index=True)
    metrics_json: str = Field(sa_column_kwargs={"name": "metrics"})
    created_at: str


def _level_dict(row: LevelModel) -> dict[str, Any]:
    return {
        "id": row.id,
        "seed": row.seed,
        "width": row.width,
        "height": row.height,
        "start": {"x": row.start_x, "y": row.start_y},
        "created_at": row.created_at,
    }


def _run_dict(row: RunModel) -> dict[str, Any]:
    metrics = json.loads(row.metrics_json) if isinstance(row.metrics_json, str) else row.metrics_json
    return {
        "id": row.id,
        "level_id": row.level_id,
        "metrics": metrics,
        "created_at": row.created_at,
    }


class SqliteLevelRepository:
    """SQLite-backed repository using SQLModel. Same interface as JsonLevelRepository."""

    def __init__(self, path: str | Path):
        self.path = Path(path)
        self.path.parent.mkdir(parents=True, exist_ok=True)
        url = f"sqlite:///{self.path}"
        self.engine = create_engine(url, connect_args={"check_same_thread": False})
        SQLModel.metadata.create_all(self.engine)

    # Level ops
    def create_level(self, seed: int, width: int, height: int, start: dict[str, int]) -> dict[str, Any]:
        row = LevelModel(
            id=str(uuid4()),
            seed=seed,
            width=width,
            height=height,
            start_x=start["x"],
            start_y=start["y"],
            created_at=_utc_now_iso(),
        )
        record = _level_dict(row)
        with Session(self.engine) as session:
            session.add(row)
            session.commit()
        return record

    def get_level(self, level_id: str) -> dict[str, Any] | None:
        with Session(self.engine) as session:
            row = session.get(LevelModel, level_id)
            if row is None:
                return None
            return _level_dict(row)

    def recent_levels(self, limit: int = 10) -> list[dict[str, Any]]:
        with Session(self.engine) as session:
            stmt = select(LevelModel).order_by(LevelModel.created_at.desc()).limit(limit)
            return [_level_dict(row) for row in session.exec(stmt).all()]

    # Run ops
    def record_run(self, level_id: str, metrics: dict[str, Any]) -> dict[str, Any]:
        with Session(self.engine) as session:
            if session.get(LevelModel, level_id) is None:
                raise KeyError(f"Unknown level_id: {level_id}")
            row = RunModel(
                id=str(uuid4()),
                level_id=level_id,
                metrics_json=json.dumps(metrics),
                created_at=_utc_now_iso(),
            )
            record = _run_dict(row)
            session.add(row)
            session.commit()
        return record

    def runs_for_level(self, level_id: str, limit: int = 10) -> list[dict[str, Any]]:
        with Session(self.engine) as session:
            stmt = select(RunModel).where(RunModel.level_id == level_id)
            items = [_run_dict(row) for row in session.exec(stmt).all()]
        items.sort(key=_run_sort_key)
        return items[:limit]

    def close(self) -> None:
        self.engine.dispose()


def open_repo(path: str | Path):
    """Return SqliteLevelRepository for .db paths, JsonLevelRepository otherwise."""
    path = Path(path)
    if path.suffix == ".db":
        logger.debug("Opening SQLite level repository at %s", path)
        return SqliteLevelRepository(path)
    logger.debug("Opening JSON level repository at %s", path)
    return JsonLevelRepository(path)
