"""
Shared test fixtures.

FakeSupabase is an in-memory stand-in for the supabase-py query builder:
tables are lists of dicts, filters are applied in Python, and update/delete
return the affected rows the way PostgREST does with return=representation.
The app's Supabase and auth dependencies are overridden to use it.
"""
import copy
import re
import uuid
from datetime import datetime, timezone

import pytest
from fastapi import HTTPException, Request
from fastapi.testclient import TestClient

from app.main import app
from app.core.dependencies import get_current_user_id
from app.core.limiter import limiter
from app.database.supabase_client import get_supabase, get_service_supabase

BUYER_COMPANY = "company-buyer"
SELLER_COMPANY = "company-seller"
BUYER_USER = {"id": "user-buyer", "email": "buyer@example.com", "app_metadata": {}}
SELLER_USER = {"id": "user-seller", "email": "seller@example.com", "app_metadata": {}}
ADMIN_USER = {"id": "user-admin", "email": "admin@afrikoni.com", "app_metadata": {"type": "admin"}}


class FakeResult:
    def __init__(self, data, count=None):
        self.data = data
        self.count = count


def _compare(value, other, op):
    if value is None:
        return False
    try:
        return op(value, other)
    except TypeError:
        return op(str(value), str(other))


def _like(pattern: str) -> re.Pattern:
    """LIKE to regex: % and _ are wildcards unless preceded by a backslash."""
    parts, escaped = [], False
    for ch in pattern:
        if escaped:
            parts.append(re.escape(ch))
            escaped = False
        elif ch == "\\":
            escaped = True
        elif ch == "%":
            parts.append(".*")
        elif ch == "_":
            parts.append(".")
        else:
            parts.append(re.escape(ch))
    return re.compile("^" + "".join(parts) + "$", re.IGNORECASE | re.DOTALL)


class FakeQuery:
    def __init__(self, db, table):
        self.db = db
        self.table = table
        self.op = "select"
        self.payload = None
        self.on_conflict = "id"
        self.filters = []
        self.ordering = []
        self.limit_n = None
        self.offset_n = 0
        self.single_mode = None
        self.count_mode = None

    def select(self, columns="*", count=None):
        self.count_mode = count
        return self

    def insert(self, payload):
        self.op, self.payload = "insert", payload
        return self

    def upsert(self, payload, on_conflict="id"):
        self.op, self.payload, self.on_conflict = "upsert", payload, on_conflict or "id"
        return self

    def update(self, payload):
        self.op, self.payload = "update", payload
        return self

    def delete(self):
        self.op = "delete"
        return self

    def eq(self, column, value):
        self.filters.append(lambda r: r.get(column) == value)
        return self

    def gt(self, column, value):
        self.filters.append(lambda r: _compare(r.get(column), value, lambda a, b: a > b))
        return self

    def gte(self, column, value):
        self.filters.append(lambda r: _compare(r.get(column), value, lambda a, b: a >= b))
        return self

    def lt(self, column, value):
        self.filters.append(lambda r: _compare(r.get(column), value, lambda a, b: a < b))
        return self

    def lte(self, column, value):
        self.filters.append(lambda r: _compare(r.get(column), value, lambda a, b: a <= b))
        return self

    def in_(self, column, values):
        values = list(values)
        self.filters.append(lambda r: r.get(column) in values)
        return self

    def is_(self, column, value):
        if value == "null":
            self.filters.append(lambda r: r.get(column) is None)
        else:
            self.filters.append(lambda r: r.get(column) is value)
        return self

    def ilike(self, column, pattern):
        regex = _like(pattern)
        self.filters.append(lambda r: r.get(column) is not None and bool(regex.match(str(r.get(column)))))
        return self

    def order(self, column, desc=False):
        self.ordering.append((column, desc))
        return self

    def limit(self, n):
        self.limit_n = n
        return self

    def offset(self, n):
        self.offset_n = n
        return self

    def maybe_single(self):
        self.single_mode = "maybe"
        return self

    def single(self):
        self.single_mode = "single"
        return self

    def _matching(self):
        return [r for r in self.db.tables.setdefault(self.table, []) if all(f(r) for f in self.filters)]

    def execute(self):
        if self.table in self.db.failing_tables:
            raise Exception(f'relation "{self.table}" does not exist')
        self.db.calls.append((self.table, self.op))
        handler = getattr(self, f"_execute_{self.op}")
        return handler()

    def _execute_select(self):
        rows = self._matching()
        for column, desc in reversed(self.ordering):
            rows = sorted(rows, key=lambda r: (r.get(column) is None, r.get(column) or ""), reverse=desc)
        count = len(rows) if self.count_mode else None
        rows = rows[self.offset_n:]
        if self.limit_n is not None:
            rows = rows[:self.limit_n]
        rows = copy.deepcopy(rows)
        if self.single_mode == "maybe":
            return FakeResult(rows[0] if rows else None, count)
        if self.single_mode == "single":
            if len(rows) != 1:
                raise Exception("JSON object requested, multiple (or no) rows returned")
            return FakeResult(rows[0], count)
        return FakeResult(rows, count)

    def _new_row(self, values):
        row = copy.deepcopy(values)
        row.setdefault("id", str(uuid.uuid4()))
        row.setdefault("created_at", datetime.now(timezone.utc).isoformat())
        return row

    def _execute_insert(self):
        payload = self.payload if isinstance(self.payload, list) else [self.payload]
        table = self.db.tables.setdefault(self.table, [])
        inserted = []
        for values in payload:
            row = self._new_row(values)
            if any(r.get("id") == row["id"] for r in table):
                raise Exception("duplicate key value violates unique constraint")
            table.append(row)
            inserted.append(copy.deepcopy(row))
        return FakeResult(inserted)

    def _execute_upsert(self):
        payload = self.payload if isinstance(self.payload, list) else [self.payload]
        table = self.db.tables.setdefault(self.table, [])
        written = []
        for values in payload:
            key = values.get(self.on_conflict)
            existing = next((r for r in table if key is not None and r.get(self.on_conflict) == key), None)
            if existing is not None:
                existing.update(copy.deepcopy(values))
                written.append(copy.deepcopy(existing))
            else:
                row = self._new_row(values)
                table.append(row)
                written.append(copy.deepcopy(row))
        return FakeResult(written)

    def _execute_update(self):
        updated = []
        for row in self._matching():
            row.update(copy.deepcopy(self.payload))
            updated.append(copy.deepcopy(row))
        return FakeResult(updated)

    def _execute_delete(self):
        doomed = self._matching()
        self.db.tables[self.table] = [r for r in self.db.tables[self.table] if r not in doomed]
        return FakeResult(copy.deepcopy(doomed))


class FakeRpc:
    def __init__(self, db, name, params):
        self.db, self.name, self.params = db, name, params

    def execute(self):
        handler = self.db.rpcs.get(self.name)
        if handler is None:
            raise Exception(f"Could not find the function public.{self.name}")
        return FakeResult(handler(**self.params))


class FakeBucket:
    def __init__(self, storage, bucket):
        self.storage, self.bucket = storage, bucket

    def upload(self, path, content, file_options=None):
        self.storage.files[(self.bucket, path)] = content
        return {"Key": f"{self.bucket}/{path}"}

    def remove(self, paths):
        for path in paths:
            self.storage.files.pop((self.bucket, path), None)
        return []

    def create_signed_url(self, path, expires_in):
        return {"signedURL": f"https://storage.test/{self.bucket}/{path}?token=signed"}


class FakeStorage:
    def __init__(self):
        self.files = {}

    def from_(self, bucket):
        return FakeBucket(self, bucket)


class FakeSupabase:
    def __init__(self):
        self.tables = {}
        self.rpcs = {}
        self.failing_tables = set()
        self.calls = []
        self.storage = FakeStorage()

    def table(self, name):
        return FakeQuery(self, name)

    def rpc(self, name, params=None):
        return FakeRpc(self, name, params or {})

    def seed(self, table, *rows):
        for row in rows:
            self.tables.setdefault(table, []).append(copy.deepcopy(row))
        return rows[0] if len(rows) == 1 else rows

    def rows(self, table, **filters):
        return [r for r in self.tables.get(table, []) if all(r.get(k) == v for k, v in filters.items())]


@pytest.fixture
def db():
    fake = FakeSupabase()
    fake.seed(
        "profiles",
        {"id": BUYER_USER["id"], "company_id": BUYER_COMPANY, "is_admin": False, "email": BUYER_USER["email"]},
        {"id": SELLER_USER["id"], "company_id": SELLER_COMPANY, "is_admin": False, "email": SELLER_USER["email"]},
        {"id": ADMIN_USER["id"], "company_id": None, "is_admin": True, "email": ADMIN_USER["email"]},
    )
    fake.seed(
        "companies",
        {"id": BUYER_COMPANY, "company_name": "Lagos Foods Ltd", "country": "Nigeria", "verification_status": "PENDING"},
        {"id": SELLER_COMPANY, "company_name": "Accra Cocoa Co", "country": "Ghana", "verification_status": "VERIFIED"},
    )
    fake.seed(
        "company_capabilities",
        {"company_id": BUYER_COMPANY, "can_buy": True, "can_sell": False, "can_logistics": False},
        {"company_id": SELLER_COMPANY, "can_buy": True, "can_sell": True, "sell_status": "approved", "can_logistics": False},
    )
    return fake


@pytest.fixture
def make_trade(db):
    def _make(status="rfq_open", **overrides):
        trade = {
            "id": str(uuid.uuid4()),
            "trade_type": "rfq",
            "title": "500 bags of cocoa beans",
            "status": status,
            "buyer_id": BUYER_COMPANY,
            "seller_id": SELLER_COMPANY,
            "quantity": 500,
            "quantity_unit": "bags",
            "total_value": 20000,
            "currency": "USD",
            "metadata": {},
            "created_at": datetime.now(timezone.utc).isoformat(),
        }
        trade.update(overrides)
        db.seed("trades", trade)
        return trade
    return _make


USERS = {u["id"]: u for u in (BUYER_USER, SELLER_USER, ADMIN_USER)}


def _current_user(request: Request) -> dict:
    user_id = request.headers.get("X-Test-User")
    if user_id not in USERS:
        raise HTTPException(status_code=401, detail="Not authenticated")
    return USERS[user_id]


@pytest.fixture
def as_user(db):
    """Returns a function that builds a TestClient acting as the given user."""
    limiter.enabled = False
    app.dependency_overrides[get_supabase] = lambda: db
    app.dependency_overrides[get_service_supabase] = lambda: db
    app.dependency_overrides[get_current_user_id] = _current_user

    def _client(user):
        USERS.setdefault(user["id"], user)
        return TestClient(app, headers={"X-Test-User": user["id"]})

    yield _client
    app.dependency_overrides.clear()
    limiter.enabled = True


@pytest.fixture
def buyer_client(as_user):
    return as_user(BUYER_USER)


@pytest.fixture
def seller_client(as_user):
    return as_user(SELLER_USER)


@pytest.fixture
def admin_client(as_user):
    return as_user(ADMIN_USER)


@pytest.fixture
def anon_client(as_user):
    """No X-Test-User header: authenticated routes answer 401, webhooks and health checks work."""
    return TestClient(app)
