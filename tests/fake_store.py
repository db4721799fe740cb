"""In-memory stand-in for database.Store, with per-operation failure injection."""

from __future__ import annotations

import copy
import threading
import uuid
from collections import defaultdict
from typing import Any

from database import StoreError

WRITE_OPERATIONS = {"insert", "update", "delete", "increment"}


class FakeStore:
    """Implements the Store interface over dicts, with per-operation failure injection."""

    configured = True

    def __init__(self, supports_atomic_increment: bool = True) -> None:
        self.supports_atomic_increment = supports_atomic_increment
        self.tables: dict[str, list[dict[str, Any]]] = defaultdict(list)
        self.calls: list[tuple[str, str]] = []
        self.failures: dict[tuple[str, str], str] = {}
        self._lock = threading.Lock()

    # -- test helpers --

    def fail(self, operation: str, table: str, message: str = "connection reset by peer") -> None:
        self.failures[(operation, table)] = message

    def seed(self, table: str, **row: Any) -> dict[str, Any]:
        row.setdefault("id", str(uuid.uuid4()))
        self.tables[table].append(row)
        return row

    def rows(self, table: str) -> list[dict[str, Any]]:
        return self.tables[table]

    def get(self, table: str, row_id: str) -> dict[str, Any] | None:
        return next((r for r in self.tables[table] if r["id"] == row_id), None)

    @property
    def writes(self) -> list[tuple[str, str]]:
        return [c for c in self.calls if c[0] in WRITE_OPERATIONS]

    def _check(self, operation: str, table: str) -> None:
        self.calls.append((operation, table))
        message = self.failures.get((operation, table))
        if message is not None:
            raise StoreError(message, operation=operation, table=table)

    @staticmethod
    def _matches(row: dict[str, Any], eq: dict[str, Any]) -> bool:
        return all(row.get(k) == v for k, v in eq.items())

    # -- Store interface --

    def insert(self, table: str, rows: list[dict[str, Any]]) -> list[dict[str, Any]]:
        self._check("insert", table)
        created = []
        with self._lock:
            for row in rows:
                doc = copy.deepcopy(dict(row))
                doc.setdefault("id", str(uuid.uuid4()))
                self.tables[table].append(doc)
                created.append(copy.deepcopy(doc))
        return created

    def insert_one(self, table: str, row: dict[str, Any]) -> dict[str, Any] | None:
        created = self.insert(table, [row])
        return created[0] if created else None

    def update(self, table: str, match: dict[str, Any], values: dict[str, Any]) -> dict[str, Any] | None:
        self._check("update", table)
        with self._lock:
            for row in self.tables[table]:
                if self._matches(row, match):
                    row.update(copy.deepcopy(dict(values)))
                    return copy.deepcopy(row)
        return None

    def select(
        self,
        table: str,
        eq: dict[str, Any] | None = None,
        in_: dict[str, Any] | None = None,
        or_: list[dict[str, Any]] | None = None,
        fields: list[str] | None = None,
        limit: int = 0,
    ) -> list[dict[str, Any]]:
        self._check("select", table)
        out = []
        for row in self.tables[table]:
            if eq and not self._matches(row, eq):
                continue
            if in_ and not all(row.get(k) in list(v) for k, v in in_.items()):
                continue
            if or_ and not any(self._matches(row, clause) for clause in or_):
                continue
            picked = {f: row[f] for f in fields if f in row} if fields else row
            out.append(copy.deepcopy(picked))
        return out[:limit] if limit else out

    def select_one(self, table: str, eq: dict[str, Any]) -> dict[str, Any] | None:
        self._check("select", table)
        for row in self.tables[table]:
            if self._matches(row, eq):
                return copy.deepcopy(row)
        return None

    def delete(self, table: str, eq: dict[str, Any]) -> int:
        self._check("delete", table)
        with self._lock:
            keep = [r for r in self.tables[table] if not self._matches(r, eq)]
            removed = len(self.tables[table]) - len(keep)
            self.tables[table] = keep
        return removed

    def increment(self, table: str, row_id: str, field: str, amount: int = 1) -> dict[str, Any] | None:
        self._check("increment", table)
        with self._lock:
            for row in self.tables[table]:
                if row["id"] == row_id:
                    row[field] = (row.get(field) or 0) + amount
                    return copy.deepcopy(row)
        return None

    def ping(self) -> list[str]:
        return sorted(self.tables)


