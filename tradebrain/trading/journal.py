import json
import sqlite3
import time
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Optional

from ..config import CoreConfig
from ..utils.errors import PersistenceError
from ..utils.logger import log

class StateStore(ABC):
    """Persistence port: one JSON-serialisable document per name.

    `load` never raises: a missing, unreadable or corrupt document is logged
    and reported as None so the caller falls back to defaults. `save` raises
    PersistenceError on failure.
    """

    @abstractmethod
    def load(self, name: str) -> Optional[dict]:
        ...

    @abstractmethod
    def save(self, name: str, doc: dict):
        ...

    def close(self):
        pass


class MemoryStore(StateStore):
    def __init__(self):
        self.docs: dict[str, str] = {}

    def load(self, name: str) -> Optional[dict]:
        raw = self.docs.get(name)
        if raw is None:
            return None
        try:
            doc = json.loads(raw)
        except json.JSONDecodeError as e:
            log.warning("In-memory document '%s' is corrupt: %s", name, e)
            return None
        return doc if isinstance(doc, dict) else None

    def save(self, name: str, doc: dict):
        try:
            self.docs[name] = json.dumps(doc)
        except (TypeError, ValueError) as e:
            raise PersistenceError(f"cannot serialise '{name}': {e}") from e


class JsonFileStore(StateStore):
    """One `<name>.json` file per document under `state_dir`."""

    def __init__(self, state_dir: str | Path):
        self.dir = Path(state_dir)

    def path(self, name: str) -> Path:
        return self.dir / f"{name}.json"

    def load(self, name: str) -> Optional[dict]:
        path = self.path(name)
        if not path.exists():
            return None
        try:
            with open(path, "r", encoding="utf-8") as f:
                doc = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            log.warning("Could not load %s: %s — using defaults.", path, e)
            return None
        if not isinstance(doc, dict):
            log.warning("Ignoring %s: top level is not an object.", path)
            return None
        return doc

    def save(self, name: str, doc: dict):
        path = self.path(name)
        tmp = path.with_suffix(".json.tmp")
        try:
            self.dir.mkdir(parents=True, exist_ok=True)
            with open(tmp, "w", encoding="utf-8") as f:
                json.dump(doc, f, indent=2)
            tmp.replace(path)
        except (OSError, TypeError, ValueError) as e:
            raise PersistenceError(f"cannot write {path}: {e}") from e


class SqliteStore(StateStore):
    """Documents as JSON text rows in a single SQLite table."""

    def __init__(self, db_path: str | Path):
        self.db_path = str(db_path)
        if self.db_path != ":memory:":
            Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)
        self.conn = sqlite3.connect(self.db_path)
        self._init_db()

    def _init_db(self):
        self.conn.execute("""
            CREATE TABLE IF NOT EXISTS documents (
                name        TEXT PRIMARY KEY,
                body        TEXT NOT NULL,
                updated     REAL
            )
        """)
        self.conn.commit()

    def load(self, name: str) -> Optional[dict]:
        try:
            row = self.conn.execute("SELECT body FROM documents WHERE name = ?", (name,)).fetchone()
            if row is None:
                return None
            doc = json.loads(row[0])
        except (sqlite3.Error, json.JSONDecodeError) as e:
            log.warning("Could not load document '%s' from %s: %s", name, self.db_path, e)
            return None
        return doc if isinstance(doc, dict) else None

    def save(self, name: str, doc: dict):
        try:
            self.conn.execute(
                "INSERT OR REPLACE INTO documents VALUES (?,?,?)",
                (name, json.dumps(doc), time.time()),
            )
            self.conn.commit()
        except (sqlite3.Error, TypeError, ValueError) as e:
            raise PersistenceError(f"cannot write '{name}' to {self.db_path}: {e}") from e

    def close(self):
        self.conn.close()


def build_store(cfg: CoreConfig) -> StateStore:
    backend = cfg.store_backend.lower()
    if backend == "memory":
        return MemoryStore()
    if backend == "sqlite":
        return SqliteStore(cfg.db_path)
    if backend == "json":
        return JsonFileStore(cfg.state_dir)
    raise ValueError(f"unknown store backend '{cfg.store_backend}'")
