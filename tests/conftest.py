"""
Shared fixtures: an in-memory Supabase stand-in and a TestClient wired to it.
"""
import itertools
import uuid
from types import SimpleNamespace
from unittest.mock import MagicMock

import pytest
from fastapi.testclient import TestClient
from postgrest.exceptions import APIError

from app.api import deps
from app.auth import supabase_auth
from app.main import app
from factories import auth_header


class FakeResponse:
    def __init__(self, data):
        self.data = data


class FakeQuery:
    """Implements the slice of the PostgREST query builder the services use."""

    def __init__(self, db, table):
        self.db = db
        self.table = table
        self.op = "select"
        self.payload = None
        self.filters = []
        self.order_by = []
        self.limit_to = None

    def select(self, *columns):
        self.op = "select"
        return self

    def insert(self, payload):
        self.op = "insert"
        self.payload = payload
        return self

    def update(self, payload):
        self.op = "update"
        self.payload = payload
        return self

    def delete(self):
        self.op = "delete"
        return self

    def eq(self, column, value):
        self.filters.append(lambda row: row.get(column) == value)
        return self

    def gt(self, column, value):
        self.filters.append(lambda row: row.get(column) is not None and row.get(column) > value)
        return self

    def gte(self, column, value):
        self.filters.append(lambda row: row.get(column) is not None and row.get(column) >= value)
        return self

    def order(self, column, desc=False):
        self.order_by.append((column, desc))
        return self

    def limit(self, count):
        self.limit_to = count
        return self

    def _matches(self, row):
        return all(f(row) for f in self.filters)

    def execute(self):
        self.db.calls.append((self.table, self.op))
        self.db.check_failure(self.table, self.op)
        rows = self.db.tables.setdefault(self.table, [])

        if self.op == "insert":
            payload = self.payload if isinstance(self.payload, list) else [self.payload]
            created = [self.db.insert_row(self.table, dict(p)) for p in payload]
            if self.table in self.db.minimal_returns:
                return FakeResponse([])
            return FakeResponse([dict(r) for r in created])

        matched = [r for r in rows if self._matches(r)]

        if self.op == "update":
            for row in matched:
                row.update(self.payload)
            return FakeResponse([dict(r) for r in matched])

        if self.op == "delete":
            self.db.tables[self.table] = [r for r in rows if not self._matches(r)]
            return FakeResponse([dict(r) for r in matched])

        result = [dict(r) for r in matched]
        for column, desc in reversed(self.order_by):
            result.sort(key=lambda r: (r.get(column) is None, r.get(column)), reverse=desc)
        if self.limit_to is not None:
            result = result[: self.limit_to]
        return FakeResponse(result)


class FakeRpc:
    def __init__(self, db, name, params):
        self.db = db
        self.name = name
        self.params = params

    def execute(self):
        self.db.rpc_calls.append((self.name, self.params))
        handler = self.db.rpc_handlers.get(self.name)
        if handler is None:
            return FakeResponse(None)
        return FakeResponse(handler(self.params))


class FakeAdmin:
    def __init__(self, db):
        self.db = db
        self.signed_out = []
        self.links = []
        self.list_calls = []

    def get_user_by_id(self, user_id):
        user = self.db.users.get(user_id)
        if user is None:
            raise Exception("User not found")
        return SimpleNamespace(user=user)

    def list_users(self, page=None, per_page=None):
        # GoTrue pages users 50 at a time unless told otherwise
        page = page or 1
        per_page = per_page or 50
        self.list_calls.append((page, per_page))
        users = list(self.db.users.values())
        return users[(page - 1) * per_page: page * per_page]

    def generate_link(self, params):
        self.links.append(params)
        link = f"https://auth.example.test/verify?type={params['type']}&redirect_to={params['options']['redirect_to']}"
        return SimpleNamespace(properties=SimpleNamespace(action_link=link))

    def sign_out(self, jwt, scope="global"):
        self.signed_out.append(jwt)


class FakeAuth:
    def __init__(self, db):
        self.db = db
        self.admin = FakeAdmin(db)

    def get_user(self, token):
        user_id = self.db.tokens.get(token)
        if user_id is None:
            raise Exception("invalid JWT")
        return SimpleNamespace(user=self.db.users[user_id])


class FakeSupabase:
    """
    In-memory Supabase client.

    ``unique`` declares unique columns per table; inserting a duplicate raises
    the same APIError (code 23505) PostgREST does.
    """

    def __init__(self):
        self.tables = {}
        self.unique = {"bookings": ["stripe_session_id"]}
        self.rpc_handlers = {}
        self.rpc_calls = []
        self.calls = []
        self.users = {}
        self.tokens = {}
        self.failures = {}
        # Tables whose inserts answer like Prefer: return=minimal
        self.minimal_returns = set()
        self._ids = itertools.count(1)
        self.auth = FakeAuth(self)

    def table(self, name):
        return FakeQuery(self, name)

    def rpc(self, name, params=None):
        return FakeRpc(self, name, params or {})

    def add_user(self, user_id, email, token=None):
        self.users[user_id] = SimpleNamespace(id=user_id, email=email)
        if token:
            self.tokens[token] = user_id
        return self.users[user_id]

    def seed(self, table, *rows):
        for row in rows:
            self.insert_row(table, dict(row))

    def rows(self, table):
        return self.tables.get(table, [])

    def fail(self, table, op, after=0):
        """Make the next ``op`` on ``table`` raise once ``after`` calls have succeeded."""
        self.failures[(table, op)] = after

    def check_failure(self, table, op):
        remaining = self.failures.get((table, op))
        if remaining is None:
            return
        if remaining <= 0:
            del self.failures[(table, op)]
            raise Exception(f"{op} on {table} failed")
        self.failures[(table, op)] = remaining - 1

    def insert_row(self, table, row):
        rows = self.tables.setdefault(table, [])
        for column in self.unique.get(table, []):
            if row.get(column) is not None and any(r.get(column) == row[column] for r in rows):
                raise APIError({
                    "message": f'duplicate key value violates unique constraint "{table}_{column}_key"',
                    "code": "23505",
                    "hint": None,
                    "details": None,
                })
        row.setdefault("id", f"{table}-{next(self._ids)}")
        if table == "shared_itineraries":
            row.setdefault("share_token", uuid.uuid4().hex)
        rows.append(row)
        return row


class RecordingNotifier:
    def __init__(self):
        self.sent = []

    def send(self, payload):
        self.sent.append(payload)
        return True

    def types(self):
        return [p["type"] for p in self.sent]


@pytest.fixture
def db():
    fake = FakeSupabase()
    fake.add_user("user-1", "guest@example.com", token="guest-token")
    fake.add_user("vendor-user", "vendor@example.com", token="vendor-token")
    fake.add_user("host-user", "host@example.com", token="host-token")
    fake.add_user("stranger", "stranger@example.com", token="stranger-token")
    return fake


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def stripe_api():
    return MagicMock(name="stripe")


@pytest.fixture
def ai():
    client = MagicMock(name="ai")
    client.complete.return_value = "Sounds great!"
    return client


@pytest.fixture
def places():
    return MagicMock(name="places")


@pytest.fixture
def client(db, notifier, stripe_api, ai, places):
    app.dependency_overrides[deps.get_db] = lambda: db
    app.dependency_overrides[supabase_auth.get_auth_client] = lambda: db
    app.dependency_overrides[deps.get_notifier] = lambda: notifier
    app.dependency_overrides[deps.get_stripe_api] = lambda: stripe_api
    app.dependency_overrides[deps.get_ai] = lambda: ai
    app.dependency_overrides[deps.get_places] = lambda: places
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


@pytest.fixture
def guest_headers():
    return auth_header("guest-token")
