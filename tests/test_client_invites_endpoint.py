from datetime import datetime, timedelta, timezone
from types import SimpleNamespace

from fastapi.testclient import TestClient

from src.auth import dependencies as auth_dependencies
from src.auth.context import Identity
from src.auth.dependencies import get_optional_identity
from src.auth.tokens import generate_token, hash_token
from src.main import app
from src.routers import client_invites as client_invites_router


class FakeResponse:
    def __init__(self, data):
        self.data = data


class FakeQuery:
    def __init__(self, table_name: str, db: "FakeSupabase"):
        self.table_name = table_name
        self.db = db
        self.operation = "select"
        self.filters = []
        self.payload = None
        self.on_conflict = None

    def select(self, _fields: str):
        self.operation = "select"
        return self

    def insert(self, payload: dict):
        self.operation = "insert"
        self.payload = payload
        return self

    def upsert(self, payload: dict, on_conflict: str = ""):
        self.operation = "upsert"
        self.payload = payload
        self.on_conflict = on_conflict
        return self

    def update(self, payload: dict):
        self.operation = "update"
        self.payload = payload
        return self

    def eq(self, key: str, value):
        self.filters.append((key, value))
        return self

    def order(self, _key: str, desc: bool = False):
        return self

    def limit(self, _value: int):
        return self

    def execute(self):
        table = self.db.tables.setdefault(self.table_name, [])
        if self.operation == "insert":
            row = {"id": f"{self.table_name}-{len(table) + 1}", **self.payload}
            table.append(row)
            return FakeResponse([dict(row)])
        if self.operation == "upsert":
            keys = [key.strip() for key in self.on_conflict.split(",") if key.strip()]
            for row in table:
                if keys and all(row.get(key) == self.payload.get(key) for key in keys):
                    row.update(self.payload)
                    return FakeResponse([dict(row)])
            row = {"id": f"{self.table_name}-{len(table) + 1}", **self.payload}
            table.append(row)
            return FakeResponse([dict(row)])
        matched = [row for row in table if all(row.get(key) == value for key, value in self.filters)]
        if self.operation == "update":
            for row in matched:
                row.update(self.payload)
        return FakeResponse([dict(row) for row in matched])


class FakeAdmin:
    def __init__(self, existing_emails: set[str]):
        self.existing_emails = existing_emails
        self.created: list[dict] = []

    def create_user(self, attributes: dict):
        if attributes["email"] in self.existing_emails:
            raise RuntimeError("A user with this email address has already been registered")
        self.created.append(attributes)
        return SimpleNamespace(user=SimpleNamespace(id=f"new-user-{len(self.created)}"))


class FakeSupabase:
    def __init__(self, tables: dict, existing_emails: set[str] | None = None):
        self.tables = tables
        self.auth = SimpleNamespace(admin=FakeAdmin(existing_emails or set()))

    def table(self, table_name: str):
        return FakeQuery(table_name, self)


def _set_identity(user_id: str | None):
    async def _override():
        return Identity(user_id=user_id) if user_id else None

    app.dependency_overrides[get_optional_identity] = _override


def _clear():
    app.dependency_overrides.clear()


def _install(monkeypatch, fake_db):
    monkeypatch.setattr(client_invites_router, "supabase", fake_db)
    monkeypatch.setattr(auth_dependencies, "supabase", fake_db)


def _base_tables():
    return {
        "team_members": [
            {"user_id": "u-owner", "org_id": "org-1", "role": "owner"},
            {"user_id": "u-member", "org_id": "org-1", "role": "member"},
        ],
        "clients": [
            {"id": "c-1", "name": "Casa Azul", "deleted_at": None},
            {"id": "c-old", "name": "Gone", "deleted_at": "2025-01-01T00:00:00+00:00"},
        ],
        "client_invites": [],
        "client_users": [],
    }


def _seed_invite(tables: dict, **overrides) -> str:
    token = generate_token()
    row = {
        "id": f"inv-{len(tables['client_invites']) + 1}",
        "client_id": "c-1",
        "email": "maria@casaazul.pt",
        "role": "client_viewer",
        "token_hash": hash_token(token),
        "expires_at": (datetime.now(timezone.utc) + timedelta(days=3)).isoformat(),
        "used_at": None,
    }
    row.update(overrides)
    tables["client_invites"].append(row)
    return token


def test_owner_creates_invite(monkeypatch):
    fake_db = FakeSupabase(_base_tables())
    _install(monkeypatch, fake_db)
    _set_identity("u-owner")
    client = TestClient(app)

    response = client.post(
        "/api/clients/invites",
        json={"client_id": "c-1", "email": "Maria@CasaAzul.pt", "role": "client_approver"},
    )
    _clear()

    assert response.status_code == 201
    body = response.json()
    raw_token = body["invite_url"].split("token=", 1)[1]
    assert body["invite_url"].startswith("http://localhost:3000/portal/invite?token=")
    stored = fake_db.tables["client_invites"][0]
    assert stored["token_hash"] == hash_token(raw_token)
    assert stored["email"] == "maria@casaazul.pt"
    assert stored["role"] == "client_approver"
    assert stored["invited_by"] == "u-owner"


def test_member_cannot_invite(monkeypatch):
    _install(monkeypatch, FakeSupabase(_base_tables()))
    _set_identity("u-member")
    client = TestClient(app)

    response = client.post("/api/clients/invites", json={"client_id": "c-1", "email": "a@b.pt"})
    _clear()

    assert response.status_code == 403


def test_invite_for_deleted_client_is_404(monkeypatch):
    _install(monkeypatch, FakeSupabase(_base_tables()))
    _set_identity("u-owner")
    client = TestClient(app)

    response = client.post("/api/clients/invites", json={"client_id": "c-old", "email": "a@b.pt"})
    _clear()

    assert response.status_code == 404


def test_preview_masks_email(monkeypatch):
    tables = _base_tables()
    token = _seed_invite(tables)
    _install(monkeypatch, FakeSupabase(tables))
    client = TestClient(app)

    response = client.get("/api/clients/invites", params={"token": token})

    assert response.status_code == 200
    body = response.json()
    assert body["email_masked"] == "ma***@casaazul.pt"
    assert body["client_name"] == "Casa Azul"


def test_preview_rejects_unknown_used_and_expired(monkeypatch):
    tables = _base_tables()
    used = _seed_invite(tables, used_at="2026-01-01T00:00:00+00:00")
    expired = _seed_invite(tables, expires_at=(datetime.now(timezone.utc) - timedelta(days=1)).isoformat())
    _install(monkeypatch, FakeSupabase(tables))
    client = TestClient(app)

    assert client.get("/api/clients/invites", params={"token": generate_token()}).status_code == 404
    assert client.get("/api/clients/invites", params={"token": used}).status_code == 410
    assert client.get("/api/clients/invites", params={"token": expired}).status_code == 410


def test_accept_creates_account_and_binds_client(monkeypatch):
    tables = _base_tables()
    token = _seed_invite(tables)
    fake_db = FakeSupabase(tables)
    _install(monkeypatch, fake_db)
    client = TestClient(app)

    response = client.post(
        "/api/clients/invites/accept",
        json={"token": token, "password": "long-enough", "full_name": "Maria"},
    )
    again = client.post("/api/clients/invites/accept", json={"token": token, "password": "long-enough"})

    assert response.status_code == 200
    assert response.json() == {"ok": True, "email": "maria@casaazul.pt"}
    assert fake_db.auth.admin.created[0]["user_metadata"] == {"full_name": "Maria"}
    assert tables["client_users"] == [
        {"id": "client_users-1", "client_id": "c-1", "user_id": "new-user-1", "role": "client_viewer"}
    ]
    assert tables["client_invites"][0]["used_by_user_id"] == "new-user-1"
    assert again.status_code == 410


def test_accept_rejects_short_password(monkeypatch):
    tables = _base_tables()
    token = _seed_invite(tables)
    _install(monkeypatch, FakeSupabase(tables))
    client = TestClient(app)

    response = client.post("/api/clients/invites/accept", json={"token": token, "password": "short"})

    assert response.status_code == 400
    assert tables["client_invites"][0]["used_at"] is None


def test_accept_existing_account_is_409(monkeypatch):
    tables = _base_tables()
    token = _seed_invite(tables)
    _install(monkeypatch, FakeSupabase(tables, existing_emails={"maria@casaazul.pt"}))
    client = TestClient(app)

    response = client.post("/api/clients/invites/accept", json={"token": token, "password": "long-enough"})

    assert response.status_code == 409
    assert tables["client_users"] == []
