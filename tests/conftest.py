import os
from types import SimpleNamespace

os.environ.setdefault('DATABASE_URL', 'sqlite://')
os.environ.setdefault('SESSION_CLEANUP_INTERVAL_MINUTES', '0')

import pytest  # noqa: E402

from cajpro.auth import service  # noqa: E402
from cajpro.core import config  # noqa: E402
from cajpro.database import Base, Database  # noqa: E402
from cajpro.models.user import User  # noqa: E402


class FakeRequest:
    def __init__(self, *, cookies=None, headers=None, host: str = '203.0.113.7'):
        self.cookies = cookies or {}
        self.headers = {key.lower(): value for key, value in (headers or {}).items()}
        self.headers.setdefault('user-agent', 'pytest-agent/1.0')
        self.client = SimpleNamespace(host=host)


@pytest.fixture(autouse=True)
def fast_password_hashing(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(config, 'BCRYPT_ROUNDS', 4)


@pytest.fixture
def database():
    store = Database('sqlite://')
    store.create_schema()
    try:
        yield store
    finally:
        Base.metadata.drop_all(bind=store.engine)
        store.dispose()


@pytest.fixture
def db(database):
    with database.session() as session:
        yield session


@pytest.fixture
def make_request():
    return FakeRequest


@pytest.fixture
def registered(db):
    """A registered user with the result of its registration."""
    return service.register_user(db, 'owner@example.com', 'longenoughpass')


@pytest.fixture
def admin(db):
    result = service.register_user(db, 'admin@example.com', 'adminpassword')
    user = db.query(User).filter(User.id == result.user.id).one()
    user.is_admin = True
    db.commit()
    return service.validate_session(db, result.token)
