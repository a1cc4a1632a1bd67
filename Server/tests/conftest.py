"""
Shared fixtures for SafawiNet Server tests

Each test gets a fresh SQLite database in a temporary directory and a
TestClient bound to the FastAPI app (lifespan not run; the fixture installs
the database manager itself).
"""

import os
import sys
import tempfile
from pathlib import Path

import pytest

# Add parent directory to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

# Must be set before config.GetSettings() is first called
os.environ.setdefault("SAFAWINET_BCRYPT_ROUNDS", "4")
os.environ.setdefault("SAFAWINET_LOG_DIR", tempfile.mkdtemp(prefix="safawinet-logs-"))
os.environ.setdefault("SAFAWINET_JWT_SECRET", "test-secret-key")
os.environ.setdefault("SAFAWINET_LOGIN_RATE_LIMIT", "1000/minute")

ADMIN_PASSWORD = "Adm1n!Secret"
USER_PASSWORD = "Us3r!Secret"


@pytest.fixture
def db_manager(tmp_path):
    """Initialized database with the admin password set to ADMIN_PASSWORD"""
    import database
    from managers.database_manager import DatabaseManager
    from models.database import User

    manager = DatabaseManager(str(tmp_path / "safawinet-test.db"), bcrypt_rounds=4)
    manager.InitializeDatabase()

    session = manager.GetSession()
    try:
        admin = session.query(User).filter(User.username == "admin").first()
        admin.password_hash = manager.HashPassword(ADMIN_PASSWORD)
        session.commit()
    finally:
        session.close()

    previous = database.db_manager
    database.db_manager = manager
    yield manager
    database.db_manager = previous
    manager.engine.dispose()


@pytest.fixture
def client(db_manager):
    from fastapi.testclient import TestClient
    from rate_limit import limiter
    from server import app

    # Login counters are per process; every test starts from zero
    limiter.reset()
    return TestClient(app)


@pytest.fixture
def make_user(db_manager):
    """
    Factory inserting a user directly into the database

    Returns the new user's ID.
    """
    from models.database import User

    def _make_user(username, permissions=None, is_admin=False, created_by=None,
                   password=USER_PASSWORD, role="custom", **fields):
        session = db_manager.GetSession()
        try:
            user = User(
                username=username,
                email=fields.pop("email", f"{username}@example.com"),
                first_name=fields.pop("first_name", username.title()),
                last_name=fields.pop("last_name", "Tester"),
                password_hash=db_manager.HashPassword(password),
                role="admin" if is_admin else role,
                is_admin=is_admin,
                permissions=permissions or [],
                created_by=created_by,
                **fields
            )
            session.add(user)
            session.commit()
            return user.user_id
        finally:
            session.close()

    return _make_user


@pytest.fixture
def login(client):
    """
    Factory logging in and returning Authorization headers
    """
    def _login(identifier, password=USER_PASSWORD, **extra):
        response = client.post(
            "/api/auth/login",
            json={"identifier": identifier, "password": password, **extra}
        )
        assert response.status_code == 200, response.text
        return {"Authorization": f"Bearer {response.json()['data']['token']}"}

    return _login


@pytest.fixture
def admin_headers(login):
    return login("admin", ADMIN_PASSWORD)


@pytest.fixture
def admin_id(db_manager):
    from models.database import User

    session = db_manager.GetSession()
    try:
        return session.query(User).filter(User.username == "admin").first().user_id
    finally:
        session.close()
