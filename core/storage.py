import copy
import threading
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Any, Callable, Iterator, Optional
from uuid import UUID

TABLES = (
    "riders",
    "delivery_records",
    "ledger_entries",
    "balances",
    "referrals",
    "settlements",
)


class StorageError(Exception):
    pass


class StorageReadError(StorageError):
    pass


class StorageWriteError(StorageError):
    pass


class DuplicateKeyError(StorageError):
    def __init__(self, table: str, index: str, key: tuple):
        super().__init__(f"duplicate key {key!r} on {table}.{index}")
        self.table = table
        self.index = index
        self.key = key


class CheckViolationError(StorageError):
    pass


class InMemoryStorage:
    """
    Process-local stand-in for the hosted relational store.

    Rows are plain dicts keyed by their ``id``. Unique indexes are declared per
    insert and enforced with insert-if-absent semantics under a single
    re-entrant lock, so every public operation is individually atomic.
    """

    def __init__(self):
        self.tables: dict[str, dict[UUID, dict]] = {name: {} for name in TABLES}
        self.unique_index: dict[tuple[str, str], dict[tuple, UUID]] = {}
        self.row_keys: dict[tuple[str, UUID], dict[str, tuple]] = {}
        self._lock = threading.RLock()

    def _index(self, table: str, index: str) -> dict[tuple, UUID]:
        return self.unique_index.setdefault((table, index), {})

    def insert(self, table: str, row: dict, unique: Optional[dict[str, tuple]] = None) -> dict:
        unique = unique or {}
        with self._lock:
            for index, key in unique.items():
                if key in self._index(table, index):
                    raise DuplicateKeyError(table, index, key)
            row_id = row["id"]
            self.tables[table][row_id] = dict(row)
            for index, key in unique.items():
                self._index(table, index)[key] = row_id
            if unique:
                self.row_keys[(table, row_id)] = dict(unique)
            return dict(row)

    def upsert(self, table: str, row: dict, index: str, key: tuple) -> tuple[dict, bool]:
        """Insert ``row`` or overwrite the row holding ``key``; returns (row, created)."""
        with self._lock:
            existing_id = self._index(table, index).get(key)
            if existing_id is None:
                return self.insert(table, row, unique={index: key}), True
            stored = self.tables[table][existing_id]
            stored.update({k: v for k, v in row.items() if k not in ("id", "created_at")})
            return dict(stored), False

    def get(self, table: str, row_id: UUID) -> Optional[dict]:
        with self._lock:
            row = self.tables[table].get(row_id)
            return dict(row) if row is not None else None

    def find(self, table: str, index: str, key: tuple) -> Optional[dict]:
        with self._lock:
            row_id = self._index(table, index).get(key)
            if row_id is None:
                return None
            return dict(self.tables[table][row_id])

    def select(self, table: str, predicate: Optional[Callable[[dict], bool]] = None) -> list[dict]:
        with self._lock:
            rows = self.tables[table].values()
            return [dict(r) for r in rows if predicate is None or predicate(r)]

    def update(self, table: str, row_id: UUID, **changes: Any) -> Optional[dict]:
        with self._lock:
            row = self.tables[table].get(row_id)
            if row is None:
                return None
            row.update(changes)
            return dict(row)

    def delete(self, table: str, row_id: UUID) -> Optional[dict]:
        with self._lock:
            row = self.tables[table].pop(row_id, None)
            if row is None:
                return None
            for index, key in self.row_keys.pop((table, row_id), {}).items():
                self._index(table, index).pop(key, None)
            return row

    def append_ledger_entry(self, entry: dict, min_balance: Optional[int] = None) -> dict:
        """
        Append an immutable ledger entry and move the user's balance with it.

        The idempotency key (when present) is a unique index, and the balance
        read-modify-write happens under the same lock as the insert.
        """
        with self._lock:
            user_id = entry["user_id"]
            balance = self.tables["balances"].get(user_id) or {
                "id": user_id,
                "user_id": user_id,
                "points": 0,
                "total_entries": 0,
                "last_transaction_at": None,
            }
            new_points = balance["points"] + entry["amount"]
            if min_balance is not None and entry["amount"] < 0 and new_points < min_balance:
                raise CheckViolationError(
                    f"balance for {user_id} would drop to {new_points} (minimum {min_balance})"
                )

            unique = {}
            if entry.get("idempotency_key"):
                unique["idempotency_key"] = (entry["idempotency_key"],)
            stored = self.insert("ledger_entries", {**entry, "balance_after": new_points}, unique=unique)

            self.tables["balances"][user_id] = {
                **balance,
                "points": new_points,
                "total_entries": balance["total_entries"] + 1,
                "last_transaction_at": entry.get("created_at") or datetime.now(timezone.utc),
            }
            return stored

    @contextmanager
    def transaction(self) -> Iterator["InMemoryStorage"]:
        """All-or-nothing unit: state is restored if the block raises."""
        with self._lock:
            snapshot = copy.deepcopy((self.tables, self.unique_index, self.row_keys))
            try:
                yield self
            except BaseException:
                self.tables, self.unique_index, self.row_keys = snapshot
                raise
