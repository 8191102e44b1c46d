"""
In-memory stand-in for the supabase-py client used by the test scripts.

Supports the subset of the PostgREST query builder the app uses:
select / insert / update, eq, in_, is_, not_.is_, order, limit, execute.
Unique columns per table raise on duplicate insert, like a unique index.
"""
import copy
import uuid
from datetime import datetime, timezone

UNIQUE_COLUMNS = {"pix_transactions": ("txid",)}


class UniqueViolation(Exception):
    pass


class _Result:
    def __init__(self, data, count=None):
        self.data = data
        self.count = count


class _Query:
    def __init__(self, db: "FakeSupabase", table: str):
        self._db = db
        self._table = table
        self._op = "select"
        self._columns = "*"
        self._payload = None
        self._filters: list = []
        self._order: list = []
        self._limit: int | None = None
        self._negate_next = False

    # ── operations ────────────────────────────────────────────────────────
    def select(self, columns: str = "*", count=None):
        self._op = "select"
        self._columns = columns
        return self

    def insert(self, payload):
        self._op = "insert"
        self._payload = payload
        return self

    def update(self, payload: dict):
        self._op = "update"
        self._payload = payload
        return self

    # ── filters ───────────────────────────────────────────────────────────
    def _add(self, fn):
        negate = self._negate_next
        self._negate_next = False
        self._filters.append((lambda row: not fn(row)) if negate else fn)
        return self

    @property
    def not_(self):
        self._negate_next = True
        return self

    def eq(self, column, value):
        return self._add(lambda row: row.get(column) == value)

    def in_(self, column, values):
        values = list(values)
        return self._add(lambda row: row.get(column) in values)

    def is_(self, column, value):
        if value in ("null", None):
            return self._add(lambda row: row.get(column) is None)
        return self._add(lambda row: row.get(column) is value)

    def order(self, column, desc=False):
        self._order.append((column, desc))
        return self

    def limit(self, n):
        self._limit = n
        return self

    # ── execution ─────────────────────────────────────────────────────────
    def _matches(self, row) -> bool:
        return all(f(row) for f in self._filters)

    def _project(self, row: dict) -> dict:
        if self._columns.strip() == "*":
            return copy.deepcopy(row)
        cols = [c.strip() for c in self._columns.split(",") if c.strip()]
        return {c: copy.deepcopy(row.get(c)) for c in cols}

    def execute(self):
        rows = self._db.tables.setdefault(self._table, [])
        self._db.calls.append((self._table, self._op))

        if self._op == "insert":
            payload = self._payload if isinstance(self._payload, list) else [self._payload]
            inserted = []
            for item in payload:
                new = copy.deepcopy(item)
                new.setdefault("id", str(uuid.uuid4()))
                new.setdefault("created_at", datetime.now(timezone.utc).isoformat())
                for col in UNIQUE_COLUMNS.get(self._table, ()):
                    if new.get(col) is not None and any(r.get(col) == new[col] for r in rows):
                        raise UniqueViolation(f"duplicate key value violates unique constraint on {col}")
                rows.append(new)
                inserted.append(copy.deepcopy(new))
            return _Result(inserted)

        if self._op == "update":
            updated = []
            for row in rows:
                if self._matches(row):
                    row.update(copy.deepcopy(self._payload))
                    updated.append(copy.deepcopy(row))
            return _Result(updated)

        selected = [r for r in rows if self._matches(r)]
        for column, desc in reversed(self._order):
            selected.sort(key=lambda r: (r.get(column) is None, r.get(column) or ""), reverse=desc)
        if self._limit is not None:
            selected = selected[: self._limit]
        data = [self._project(r) for r in selected]
        return _Result(data, count=len(data))


class FakeSupabase:
    def __init__(self, tables: dict | None = None):
        self.tables: dict[str, list[dict]] = copy.deepcopy(tables or {})
        self.calls: list[tuple[str, str]] = []

    def table(self, name: str) -> _Query:
        return _Query(self, name)

    def rows(self, name: str) -> list[dict]:
        return self.tables.get(name, [])

    def setting(self, key: str, value: str, user_id: str | None = None) -> None:
        self.tables.setdefault("admin_settings", []).append(
            {"key": key, "value": value, "user_id": user_id}
        )
