"""Pytest configuration and fixtures for the authorization tests.

FakeSupabase mimics the slice of the async supabase-py query builder the app
uses: table().select(count=).eq().in_().gt().lt().or_().order().limit().range(),
insert / update / upsert(on_conflict, ignore_duplicates) / delete, and an
awaitable execute() returning .data and .count.
"""

import copy
import pytest
from datetime import datetime, timedelta, timezone
from types import SimpleNamespace
from uuid import uuid4

from app.authorization.checker import PermissionChecker
from app.authorization.guards.bundle import Guards
from app.authorization.models import Principal
from app.authorization.repository import AuthorizationRepository
from app.config.permissions_config import SCOPED_PERMISSIONS, Permissions, Scopes
from app.modules.auth.service import StaticSession, clear_auth_cache


def _comparable(value):
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=timezone.utc)
    if isinstance(value, str):
        try:
            parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
        except ValueError:
            return value
        return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)
    return value


class FakeResponse:
    def __init__(self, data, count=None):
        self.data = data
        self.count = count


class FakeQuery:
    def __init__(self, db, table):
        self.db = db
        self.table = table
        self.op = "select"
        self.payload = None
        self.filters = []
        self.count_mode = None
        self.order_by = None
        self.desc = False
        self.limit_n = None
        self.offset = 0
        self.on_conflict = None
        self.ignore_duplicates = False
        self.or_filters = []

    # operations

    def select(self, columns="*", count=None):
        self.op = "select"
        self.count_mode = count
        return self

    def insert(self, data):
        self.op = "insert"
        self.payload = data
        return self

    def update(self, data):
        self.op = "update"
        self.payload = data
        return self

    def upsert(self, data, on_conflict="", ignore_duplicates=False):
        self.op = "upsert"
        self.payload = data
        self.on_conflict = on_conflict
        self.ignore_duplicates = ignore_duplicates
        return self

    def delete(self):
        self.op = "delete"
        return self

    # filters and modifiers

    def eq(self, column, value):
        self.filters.append(lambda row: row.get(column) == value)
        return self

    def in_(self, column, values):
        values = list(values)
        self.filters.append(lambda row: row.get(column) in values)
        return self

    def gt(self, column, value):
        self.filters.append(
            lambda row: row.get(column) is not None and _comparable(row.get(column)) > _comparable(value)
        )
        return self

    def lt(self, column, value):
        self.filters.append(
            lambda row: row.get(column) is not None and _comparable(row.get(column)) < _comparable(value)
        )
        return self

    def or_(self, filters):
        """PostgREST disjunction, e.g. "is_system.eq.true,owner_id.eq.member"."""
        clauses = []
        for clause in filters.split(","):
            column, op, value = clause.split(".", 2)
            assert op == "eq", f"unsupported operator {op}"
            value = value.strip('"')
            clauses.append((column, {"true": True, "false": False}.get(value, value)))
        self.or_filters.append(filters)
        self.filters.append(lambda row: any(row.get(c) == v for c, v in clauses))
        return self

    def order(self, column, desc=False):
        self.order_by = column
        self.desc = desc
        return self

    def limit(self, n):
        self.limit_n = n
        return self

    def range(self, start, end):
        self.offset = start
        self.limit_n = end - start + 1
        return self

    async def execute(self):
        self.db.executed.append((self.table, self.op))
        self.db.last_query = self
        if self.table in self.db.failing:
            raise RuntimeError(f"relation {self.table} unavailable")

        rows = self.db.tables.setdefault(self.table, [])
        if self.op == "insert":
            items = self.payload if isinstance(self.payload, list) else [self.payload]
            created = [self.db.new_row(item) for item in items]
            rows.extend(created)
            return FakeResponse(copy.deepcopy(created))

        if self.op == "upsert":
            return FakeResponse(copy.deepcopy(self._upsert(rows)))

        matched = [r for r in rows if all(f(r) for f in self.filters)]
        if self.op == "update":
            for row in matched:
                row.update(copy.deepcopy(self.payload))
            return FakeResponse(copy.deepcopy(matched))
        if self.op == "delete":
            gone = {id(r) for r in matched}
            self.db.tables[self.table] = [r for r in rows if id(r) not in gone]
            return FakeResponse(copy.deepcopy(matched))

        count = len(matched) if self.count_mode else None
        if self.order_by:
            matched = sorted(
                matched,
                key=lambda r: (r.get(self.order_by) is None, r.get(self.order_by) or ""),
                reverse=self.desc,
            )
        matched = matched[self.offset:]
        if self.limit_n is not None:
            matched = matched[:self.limit_n]
        return FakeResponse(copy.deepcopy(matched), count)

    def _upsert(self, rows):
        keys = [k.strip() for k in (self.on_conflict or "id").split(",") if k.strip()]
        items = self.payload if isinstance(self.payload, list) else [self.payload]
        written = []
        for item in items:
            existing = next((r for r in rows if all(r.get(k) == item.get(k) for k in keys)), None)
            if existing is None:
                row = self.db.new_row(item)
                rows.append(row)
                written.append(row)
            elif not self.ignore_duplicates:
                existing.update(copy.deepcopy(item))
                written.append(existing)
        return written


class FakeAuth:
    def __init__(self):
        self.tokens = {}
        self.calls = 0

    async def get_user(self, jwt=None):
        self.calls += 1
        user = self.tokens.get(jwt)
        if user is None:
            raise RuntimeError("invalid JWT")
        return SimpleNamespace(user=user)


class FakeSupabase:
    def __init__(self, tables=None):
        self.tables = tables or {}
        self.failing = set()
        self.executed = []
        self.last_query = None
        self.auth = FakeAuth()

    def table(self, name):
        return FakeQuery(self, name)

    def fail(self, *tables):
        self.failing.update(tables)

    def rows(self, table, **filters):
        return [
            r for r in self.tables.get(table, [])
            if all(r.get(k) == v for k, v in filters.items())
        ]

    @staticmethod
    def new_row(data):
        row = copy.deepcopy(data)
        row.setdefault("id", str(uuid4()))
        row.setdefault("created_at", datetime.now(timezone.utc).isoformat())
        return row


def perm_id(scope, name):
    return f"{scope}/{name}"


DEVELOPER_PERMISSIONS = [
    Permissions.PROJECT.READ,
    Permissions.PAGE.CREATE,
    Permissions.PAGE.EDIT,
    Permissions.ANNOTATION.CREATE,
    Permissions.ANNOTATION.RESOLVE,
]


def seed_tables():
    """
    w1 (owner) holds p1 "alpha" (owner) and p2 "beta" (member).
    p1 -> s1 (owner) -> pg1 private, pg2 public, pg3 public with password.
    admin/member/dev/editor are w1 members; dev is also a p1 member;
    guest is only a p1 member; outsider owns w2 and nothing else.
    """
    now = datetime.now(timezone.utc)
    users = [
        {"id": "super", "email": "super@example.com", "is_super_admin": True},
        {"id": "owner", "email": "owner@example.com"},
        {"id": "admin", "email": "admin@example.com"},
        {"id": "member", "email": "member@example.com"},
        {"id": "dev", "email": "dev@example.com"},
        {"id": "editor", "email": "editor@example.com"},
        {"id": "guest", "email": "guest@example.com"},
        {"id": "outsider", "email": "outsider@example.com"},
        {"id": "newbie", "email": "newbie@example.com"},
    ]

    permissions = [
        {"id": perm_id(scope, name), "name": name, "scope": scope, "description": description, "owner_id": None}
        for scope, scoped in SCOPED_PERMISSIONS.items()
        for name, description in scoped.items()
    ]
    permissions += [
        {"id": "cp-approve", "name": "approve:page", "scope": Scopes.PROJECT, "description": None, "owner_id": "member"},
        {"id": "cp-flag", "name": "flag:page", "scope": Scopes.PROJECT, "description": None, "owner_id": "member"},
        {"id": "cp-other", "name": "stamp:page", "scope": Scopes.PROJECT, "description": None, "owner_id": "outsider"},
    ]

    roles = [
        {"id": "r-ws-admin", "name": "admin", "scope": Scopes.WORKSPACE, "is_system": True, "owner_id": None},
        {"id": "r-ws-member", "name": "member", "scope": Scopes.WORKSPACE, "is_system": True, "owner_id": None},
        {"id": "r-ws-editor", "name": "editor", "scope": Scopes.WORKSPACE, "is_system": True, "owner_id": None},
        {"id": "r-proj-dev", "name": "developer", "scope": Scopes.PROJECT, "is_system": True, "owner_id": None},
        {"id": "r-reviewer", "name": "reviewer", "scope": Scopes.PROJECT, "is_system": False, "owner_id": "member"},
        {"id": "r-scratch", "name": "scratch", "scope": Scopes.PROJECT, "is_system": False, "owner_id": "member"},
        {"id": "r-foreign", "name": "foreign", "scope": Scopes.PROJECT, "is_system": False, "owner_id": "outsider"},
    ]

    assignments = [
        {"id": f"rpa-admin-{name}", "role_id": "r-ws-admin", "permission_id": perm_id(Scopes.WORKSPACE, name)}
        for name in SCOPED_PERMISSIONS[Scopes.WORKSPACE]
    ]
    assignments += [
        {"id": "rpa-member-read", "role_id": "r-ws-member", "permission_id": perm_id(Scopes.WORKSPACE, Permissions.WORKSPACE.READ)},
        {"id": "rpa-member-create", "role_id": "r-ws-member", "permission_id": perm_id(Scopes.WORKSPACE, Permissions.PROJECT.CREATE)},
        {"id": "rpa-reviewer", "role_id": "r-reviewer", "permission_id": "cp-approve"},
    ]
    assignments += [
        {"id": f"rpa-dev-{name}", "role_id": "r-proj-dev", "permission_id": perm_id(Scopes.PROJECT, name)}
        for name in DEVELOPER_PERMISSIONS
    ]

    return {
        "users": users,
        "workspaces": [
            {"id": "w1", "name": "Acme", "slug": "acme", "owner_id": "owner"},
            {"id": "w2", "name": "Other", "slug": "other", "owner_id": "outsider"},
        ],
        "projects": [
            {"id": "p1", "name": "Alpha", "slug": "alpha", "owner_id": "owner", "workspace_id": "w1"},
            {"id": "p2", "name": "Beta", "slug": "beta", "owner_id": "member", "workspace_id": "w1"},
            {"id": "p9", "name": "Elsewhere", "slug": "elsewhere", "owner_id": "outsider", "workspace_id": "w2"},
        ],
        "sections": [
            {"id": "s1", "title": "Guide", "owner_id": "owner", "project_id": "p1"},
            {"id": "s2", "title": "Notes", "owner_id": "member", "project_id": "p1"},
        ],
        "pages": [
            {"id": "pg1", "title": "Intro", "owner_id": "owner", "section_id": "s1", "is_public": False, "password": None},
            {"id": "pg2", "title": "Public", "owner_id": "dev", "section_id": "s1", "is_public": True, "password": None},
            {"id": "pg3", "title": "Secret", "owner_id": "owner", "section_id": "s1", "is_public": True, "password": "hunter2"},
        ],
        "annotations": [
            {"id": "a1", "user_id": "dev", "page_id": "pg1", "is_resolved": False},
            {"id": "a2", "user_id": "member", "page_id": "pg1", "is_resolved": True},
        ],
        "notifications": [
            {"id": "n1", "user_id": "member", "type": "mention", "is_read": False},
        ],
        "invitations": [
            {
                "id": "i1", "email": "newbie@example.com", "token": "tok-valid", "workspace_id": "w1",
                "project_id": None, "role_id": "r-ws-member", "invited_by": "admin", "is_accepted": False,
                "expires_at": (now + timedelta(days=3)).isoformat(), "created_at": (now - timedelta(days=1)).isoformat(),
            },
            {
                "id": "i2", "email": "late@example.com", "token": "tok-expired", "workspace_id": "w1",
                "project_id": None, "role_id": None, "invited_by": "owner", "is_accepted": False,
                "expires_at": (now - timedelta(days=1)).isoformat(), "created_at": (now - timedelta(days=9)).isoformat(),
            },
            {
                "id": "i3", "email": "member@example.com", "token": "tok-accepted", "workspace_id": "w1",
                "project_id": None, "role_id": None, "invited_by": "owner", "is_accepted": True,
                "accepted_by": "member", "expires_at": (now + timedelta(days=3)).isoformat(),
                "created_at": (now - timedelta(days=2)).isoformat(),
            },
            {
                "id": "i4", "email": "newbie@example.com", "token": "tok-project", "workspace_id": "w1",
                "project_id": "p1", "role_id": "r-proj-dev", "invited_by": "owner", "is_accepted": False,
                "expires_at": (now + timedelta(days=3)).isoformat(), "created_at": now.isoformat(),
            },
        ],
        "permissions": permissions,
        "roles": roles,
        "role_permission_assignments": assignments,
        "workspace_members": [
            {"id": "wm-admin", "user_id": "admin", "workspace_id": "w1", "role_id": "r-ws-admin"},
            {"id": "wm-member", "user_id": "member", "workspace_id": "w1", "role_id": "r-ws-member"},
            {"id": "wm-dev", "user_id": "dev", "workspace_id": "w1", "role_id": "r-ws-member"},
            {"id": "wm-editor", "user_id": "editor", "workspace_id": "w1", "role_id": "r-ws-editor"},
        ],
        "project_members": [
            {"id": "pm-dev", "user_id": "dev", "project_id": "p1", "role_id": "r-proj-dev"},
            {"id": "pm-guest", "user_id": "guest", "project_id": "p1", "role_id": None},
        ],
        "project_user_permissions": [
            {
                "id": "pup-member-delete-section", "user_id": "member", "project_id": "p1",
                "permission_id": perm_id(Scopes.PROJECT, Permissions.SECTION.DELETE),
            },
        ],
    }


@pytest.fixture(autouse=True)
def _clear_auth_cache():
    clear_auth_cache()
    yield
    clear_auth_cache()


@pytest.fixture
def supabase():
    """Fresh seeded in-memory database per test."""
    return FakeSupabase(seed_tables())


@pytest.fixture
def repository(supabase):
    return AuthorizationRepository(supabase)


@pytest.fixture
def checker(repository):
    return PermissionChecker(repository)


def load_principal(supabase, user_id):
    if user_id is None:
        return None
    row = supabase.rows("users", id=user_id)[0]
    return Principal(**row)


@pytest.fixture
def principal_of(supabase):
    def _principal(user_id):
        return load_principal(supabase, user_id)
    return _principal


@pytest.fixture
def make_guards(supabase):
    """make_guards("member") -> Guards acting as that user; None is anonymous."""
    def _make(user_id=None):
        repository = AuthorizationRepository(supabase)
        session = StaticSession(load_principal(supabase, user_id))
        return Guards(session, repository, PermissionChecker(repository))
    return _make
