"""
SQLite-backed document store and simple migration system.

Collections (``marathons``, ``registrations``) are stored as one table
each with an ``id`` column (24‑character hex, ObjectId‑like) and a
``doc`` column holding the JSON document.  The ``DocumentStore`` class
offers the handful of operations the services need (``find_one``,
``find``, ``insert_one``, ``update_one`` with ``$set``/``$inc``,
``delete_one``, ``count_documents``) with MongoDB‑shaped filters and
results, so handlers read like the driver calls they replace.

Every operation is atomic on its own: writes run inside a
``BEGIN IMMEDIATE`` transaction while holding the store lock.  No
operation spans several documents or collections.

A single store is opened during application startup, attached to
``app.state.store`` and handed to routes through the ``get_store``
dependency; it is closed again at shutdown.  The migration mechanism
stores applied versions in the ``migrations`` table and executes new
migrations in order.
"""

import json
import logging
import os
import re
import secrets
import sqlite3
import threading
import time
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional, Sequence, Tuple

from fastapi import Request

from .config import settings
from .errors import DuplicateKeyError, StoreError, ValidationError


logger = logging.getLogger(__name__)

COLLECTIONS = ("marathons", "registrations")

_FIELD_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")
_OBJECT_ID_RE = re.compile(r"^[0-9a-fA-F]{24}$")


MIGRATIONS: list[tuple[int, str]] = [
    # Migration 1: one table per collection
    (
        1,
        """
        CREATE TABLE IF NOT EXISTS marathons (
            id TEXT PRIMARY KEY,
            doc TEXT NOT NULL,
            created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
        );

        CREATE TABLE IF NOT EXISTS registrations (
            id TEXT PRIMARY KEY,
            doc TEXT NOT NULL,
            created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
        );
        """,
    ),
    # Migration 2: at most one registration per (marathonId, email), plus
    # lookup indices for the per-user listings.
    (
        2,
        """
        CREATE UNIQUE INDEX IF NOT EXISTS idx_registrations_marathon_email
            ON registrations (json_extract(doc, '$.marathonId'), json_extract(doc, '$.email'));
        CREATE INDEX IF NOT EXISTS idx_registrations_email
            ON registrations (json_extract(doc, '$.email'));
        CREATE INDEX IF NOT EXISTS idx_marathons_email
            ON marathons (json_extract(doc, '$.email'));
        """,
    ),
]


def get_database_path() -> str:
    """Compute the path to the SQLite database file.

    If ``settings.database_url`` is an absolute path (or ``:memory:``),
    use it directly.  Otherwise resolve it relative to the project root.
    """
    db_url = settings.database_url
    if db_url == ":memory:" or os.path.isabs(db_url):
        return db_url
    base_dir = Path(__file__).resolve().parent.parent.parent
    return str((base_dir / db_url).resolve())


def new_object_id() -> str:
    """Return a fresh 24-character hex identifier (4-byte time + 8 random bytes)."""
    return f"{int(time.time()) & 0xFFFFFFFF:08x}{secrets.token_hex(8)}"


def is_valid_object_id(value: Any) -> bool:
    return isinstance(value, str) and bool(_OBJECT_ID_RE.match(value))


def normalize_object_id(value: Any) -> Optional[str]:
    """Canonical (lower-case) form of a valid id, or ``None`` if malformed.

    Ids are generated in lower case, so ``6751B2...`` and ``6751b2...``
    name the same document.
    """
    if not is_valid_object_id(value):
        return None
    return value.lower()


def _regexp(pattern: str, value: Any) -> bool:
    if value is None:
        return False
    return re.search(pattern, str(value)) is not None


def _check_collection(collection: str) -> str:
    if collection not in COLLECTIONS:
        raise ValidationError(f"Unknown collection {collection!r}")
    return collection


def _check_field(name: str) -> str:
    if not isinstance(name, str) or not _FIELD_RE.match(name):
        raise ValidationError(f"Invalid field name {name!r}")
    return name


def _check_document_key(name: Any) -> str:
    # Keys are only ever serialized into the JSON body, never into SQL.
    if not isinstance(name, str) or not name:
        raise ValidationError(f"Invalid field name {name!r}")
    if name.startswith("$"):
        raise ValidationError(f"Field names may not start with '$': {name!r}")
    return name


def _column(name: str) -> str:
    if name == "_id":
        return "id"
    return f"json_extract(doc, '$.{_check_field(name)}')"


def _is_scalar(value: Any) -> bool:
    return value is None or isinstance(value, (str, int, float, bool))


def _compile_filter(query: Optional[Dict[str, Any]]) -> Tuple[str, list]:
    """Translate a MongoDB-style filter into a SQL ``WHERE`` clause.

    Supported: equality on scalar values, ``$gte``, ``$lte`` and
    ``$regex`` (with an optional ``$options`` containing ``i``).
    """
    clauses: List[str] = []
    params: list = []
    for key, condition in (query or {}).items():
        column = _column(key)
        if isinstance(condition, dict):
            for op, value in condition.items():
                if op == "$gte":
                    clauses.append(f"{column} >= ?")
                    params.append(value)
                elif op == "$lte":
                    clauses.append(f"{column} <= ?")
                    params.append(value)
                elif op == "$regex":
                    pattern = str(value)
                    if "i" in str(condition.get("$options", "")):
                        pattern = f"(?i){pattern}"
                    clauses.append(f"{column} REGEXP ?")
                    params.append(pattern)
                elif op == "$options":
                    continue
                else:
                    raise ValidationError(f"Unsupported query operator {op!r}")
        elif condition is None:
            clauses.append(f"{column} IS NULL")
        elif _is_scalar(condition):
            clauses.append(f"{column} = ?")
            params.append(condition)
        else:
            raise ValidationError(f"Unsupported filter value for {key!r}")
    where = " AND ".join(clauses) if clauses else "1 = 1"
    return where, params


def _apply_update(document: Dict[str, Any], update: Dict[str, Any]) -> Dict[str, Any]:
    """Return a copy of ``document`` with ``$set`` / ``$inc`` applied."""
    if not update:
        raise ValidationError("Update document must not be empty")
    result = dict(document)
    for op, fields in update.items():
        if op not in ("$set", "$inc"):
            raise ValidationError(f"Unsupported update operator {op!r}")
        if not isinstance(fields, dict):
            raise ValidationError(f"{op} expects an object")
        for name, value in fields.items():
            if name == "_id":
                raise ValidationError("The _id field is immutable")
            _check_document_key(name)
            if op == "$set":
                result[name] = value
                continue
            if isinstance(value, bool) or not isinstance(value, (int, float)):
                raise ValidationError(f"$inc value for {name!r} must be a number")
            current = result.get(name, 0)
            if current is None:
                current = 0
            if isinstance(current, bool) or not isinstance(current, (int, float)):
                raise ValidationError(f"Cannot apply $inc to non-numeric field {name!r}")
            result[name] = current + value
    return result


@dataclass
class InsertOneResult:
    inserted_id: str
    acknowledged: bool = True

    def to_dict(self) -> Dict[str, Any]:
        return {"acknowledged": self.acknowledged, "insertedId": self.inserted_id}


@dataclass
class UpdateResult:
    matched_count: int
    modified_count: int
    acknowledged: bool = True

    def to_dict(self) -> Dict[str, Any]:
        return {
            "acknowledged": self.acknowledged,
            "matchedCount": self.matched_count,
            "modifiedCount": self.modified_count,
            "upsertedId": None,
            "upsertedCount": 0,
        }


@dataclass
class DeleteResult:
    deleted_count: int
    acknowledged: bool = True

    def to_dict(self) -> Dict[str, Any]:
        return {"acknowledged": self.acknowledged, "deletedCount": self.deleted_count}


class DocumentStore:
    """JSON document collections on top of a single SQLite connection."""

    def __init__(self, path: Optional[str] = None) -> None:
        self.path = path or get_database_path()
        self._lock = threading.RLock()
        self._conn: Optional[sqlite3.Connection] = None
        with self._translate_errors():
            # Autocommit mode: transactions are opened explicitly per write.
            conn = sqlite3.connect(self.path, isolation_level=None, check_same_thread=False)
            conn.row_factory = sqlite3.Row
            conn.create_function("REGEXP", 2, _regexp, deterministic=True)
            self._conn = conn
        logger.info("Document store opened at %s", self.path)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def close(self) -> None:
        with self._lock:
            if self._conn is not None:
                self._conn.close()
                self._conn = None
                logger.info("Document store at %s closed", self.path)

    @property
    def closed(self) -> bool:
        return self._conn is None

    def init_db(self) -> None:
        """Create the collections and apply pending migrations."""
        with self._lock, self._translate_errors():
            conn = self._connection()
            conn.execute("CREATE TABLE IF NOT EXISTS migrations (version INTEGER PRIMARY KEY)")
            row = conn.execute("SELECT MAX(version) AS version FROM migrations").fetchone()
            current_version = row["version"] if row and row["version"] is not None else 0
            for version, sql in MIGRATIONS:
                if version > current_version:
                    conn.executescript(sql)
                    conn.execute("INSERT INTO migrations (version) VALUES (?)", (version,))
                    current_version = version
                    logger.info("Applied store migration %s", version)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _connection(self) -> sqlite3.Connection:
        if self._conn is None:
            raise StoreError("Document store is closed")
        return self._conn

    @contextmanager
    def _translate_errors(self) -> Iterator[None]:
        try:
            yield
        except sqlite3.IntegrityError as e:
            raise DuplicateKeyError(str(e)) from e
        except sqlite3.Error as e:
            logger.error("Store operation failed: %s", e)
            raise StoreError(str(e)) from e

    @contextmanager
    def _transaction(self) -> Iterator[sqlite3.Connection]:
        with self._lock, self._translate_errors():
            conn = self._connection()
            conn.execute("BEGIN IMMEDIATE")
            try:
                yield conn
            except BaseException:
                conn.execute("ROLLBACK")
                raise
            conn.execute("COMMIT")

    @staticmethod
    def _to_document(row: sqlite3.Row) -> Dict[str, Any]:
        return {"_id": row["id"], **json.loads(row["doc"])}

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def find(
        self,
        collection: str,
        query: Optional[Dict[str, Any]] = None,
        sort: Optional[Sequence[Tuple[str, int]]] = None,
        limit: Optional[int] = None,
    ) -> List[Dict[str, Any]]:
        """Return documents matching ``query``.

        ``sort`` is a sequence of ``(field, direction)`` pairs where a
        negative direction sorts descending.  ``limit`` caps the number
        of returned documents.
        """
        table = _check_collection(collection)
        where, params = _compile_filter(query)
        sql = f"SELECT id, doc FROM {table} WHERE {where}"
        if sort:
            order = ", ".join(
                f"{_column(name)} {'DESC' if direction < 0 else 'ASC'}" for name, direction in sort
            )
            sql += f" ORDER BY {order}"
        else:
            sql += " ORDER BY rowid ASC"
        if limit is not None:
            sql += " LIMIT ?"
            params.append(int(limit))
        with self._lock, self._translate_errors():
            rows = self._connection().execute(sql, tuple(params)).fetchall()
        return [self._to_document(row) for row in rows]

    def find_one(self, collection: str, query: Optional[Dict[str, Any]] = None) -> Optional[Dict[str, Any]]:
        documents = self.find(collection, query, limit=1)
        return documents[0] if documents else None

    def count_documents(self, collection: str, query: Optional[Dict[str, Any]] = None) -> int:
        table = _check_collection(collection)
        where, params = _compile_filter(query)
        with self._lock, self._translate_errors():
            row = self._connection().execute(
                f"SELECT COUNT(*) AS total FROM {table} WHERE {where}", tuple(params)
            ).fetchone()
        return int(row["total"])

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def insert_one(self, collection: str, document: Dict[str, Any]) -> InsertOneResult:
        """Insert ``document``, assigning a new ``_id`` when it has none.

        Raises ``DuplicateKeyError`` when a unique index rejects it.
        """
        table = _check_collection(collection)
        body = dict(document)
        doc_id = body.pop("_id", None) or new_object_id()
        if not isinstance(doc_id, str):
            raise ValidationError("_id must be a string")
        for name in body:
            _check_document_key(name)
        payload = json.dumps(body, default=str)
        with self._transaction() as conn:
            conn.execute(f"INSERT INTO {table} (id, doc) VALUES (?, ?)", (doc_id, payload))
        return InsertOneResult(inserted_id=doc_id)

    def update_one(
        self,
        collection: str,
        query: Dict[str, Any],
        update: Dict[str, Any],
    ) -> UpdateResult:
        """Apply ``$set`` / ``$inc`` to the first document matching ``query``.

        ``matched_count`` is 0 or 1; ``modified_count`` is 1 only when
        the stored document actually changed.
        """
        table = _check_collection(collection)
        where, params = _compile_filter(query)
        with self._transaction() as conn:
            row = conn.execute(
                f"SELECT id, doc FROM {table} WHERE {where} ORDER BY rowid ASC LIMIT 1", tuple(params)
            ).fetchone()
            if row is None:
                return UpdateResult(matched_count=0, modified_count=0)
            current = json.loads(row["doc"])
            updated = _apply_update(current, update)
            if updated == current:
                return UpdateResult(matched_count=1, modified_count=0)
            conn.execute(
                f"UPDATE {table} SET doc = ? WHERE id = ?",
                (json.dumps(updated, default=str), row["id"]),
            )
        return UpdateResult(matched_count=1, modified_count=1)

    def delete_one(self, collection: str, query: Dict[str, Any]) -> DeleteResult:
        table = _check_collection(collection)
        where, params = _compile_filter(query)
        with self._transaction() as conn:
            cursor = conn.execute(
                f"DELETE FROM {table} WHERE id = (SELECT id FROM {table} WHERE {where} ORDER BY rowid ASC LIMIT 1)",
                tuple(params),
            )
            deleted = cursor.rowcount
        return DeleteResult(deleted_count=max(deleted, 0))


def get_store(request: Request) -> DocumentStore:
    """FastAPI dependency returning the store opened at startup."""
    store = getattr(request.app.state, "store", None)
    if store is None:
        raise StoreError("Document store is not initialised")
    return store
