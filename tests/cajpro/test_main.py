from datetime import timedelta

import pytest
from fastapi.testclient import TestClient

from cajpro.database import Base, Database, utcnow
from cajpro.main import create_app
from cajpro.models.session import UserSession
from cajpro.models.user import User


@pytest.fixture
def store():
    database = Database('sqlite://')
    try:
        yield database
    finally:
        Base.metadata.drop_all(bind=database.engine)
        database.dispose()


@pytest.fixture
def client(store):
    with TestClient(create_app(store)) as test_client:
        yield test_client


def _bearer(token: str) -> dict[str, str]:
    return {'Authorization': f'Bearer {token}'}


def test_root_reports_running(client) -> None:
    response = client.get('/')

    assert response.status_code == 200
    assert response.json() == {'status': 'CAJ-Pro API Running'}


def test_register_login_logout_flow(client) -> None:
    registered = client.post('/auth/register', json={'email': 'a@x.com', 'password': 'password123'})
    assert registered.status_code == 201
    first_token = registered.json()['token']
    assert client.cookies.get('cajpro_auth_token') == first_token

    me = client.get('/auth/me')
    assert me.status_code == 200
    assert me.json()['email'] == 'a@x.com'

    logged_in = client.post('/auth/login', json={'email': 'a@x.com', 'password': 'password123'})
    assert logged_in.status_code == 200
    second_token = logged_in.json()['token']
    assert second_token != first_token

    client.cookies.clear()
    assert client.get('/auth/me', headers=_bearer(first_token)).status_code == 401
    assert client.get('/auth/me', headers=_bearer(second_token)).status_code == 200

    logged_out = client.post('/auth/logout', headers=_bearer(second_token))
    assert logged_out.status_code == 200
    assert logged_out.json() == {'success': True, 'message': 'Logged out.'}
    assert client.get('/auth/me', headers=_bearer(second_token)).status_code == 401

    status = client.get('/auth/session')
    assert status.json() == {'authenticated': False, 'user': None}


def test_register_rejects_invalid_payloads(client) -> None:
    assert client.post('/auth/register', json={'email': 'nope', 'password': 'password123'}).status_code == 422
    assert client.post('/auth/register', json={'email': 'a@x.com', 'password': 'short'}).status_code == 400

    client.post('/auth/register', json={'email': 'a@x.com', 'password': 'password123'})
    duplicate = client.post('/auth/register', json={'email': 'A@X.com', 'password': 'password123'})
    assert duplicate.status_code == 409
    assert duplicate.json() == {'detail': 'This email is already registered.'}


def test_login_failure_is_generic(client) -> None:
    client.post('/auth/register', json={'email': 'a@x.com', 'password': 'password123'})
    client.cookies.clear()

    wrong_password = client.post('/auth/login', json={'email': 'a@x.com', 'password': 'password124'})
    unknown_user = client.post('/auth/login', json={'email': 'b@x.com', 'password': 'password123'})

    assert wrong_password.status_code == unknown_user.status_code == 401
    assert wrong_password.json() == unknown_user.json() == {'detail': 'Invalid email or password.'}


def test_profile_round_trip(client) -> None:
    client.post('/auth/register', json={'email': 'a@x.com', 'password': 'password123'})

    assert client.get('/profile').json()['expertise_level'] == 'beginner'

    updated = client.put('/profile', json={'full_name': 'Ada', 'expertise_level': 'advanced'})
    assert updated.status_code == 200
    assert client.get('/profile').json()['full_name'] == 'Ada'
    assert client.put('/profile', json={'website': 'example.com'}).status_code == 422


def test_admin_routes_require_admin(client, store) -> None:
    client.post('/auth/register', json={'email': 'a@x.com', 'password': 'password123'})
    assert client.get('/admin/users').status_code == 403

    with store.session() as db:
        db.query(User).filter(User.email == 'a@x.com').update({User.is_admin: True})
        db.commit()

    listing = client.get('/admin/users', params={'limit': 5})
    assert listing.status_code == 200
    assert listing.json()['total'] == 1
    assert client.get('/admin/users', params={'limit': 500}).status_code == 422
    stats = client.get('/admin/users/stats')
    assert stats.status_code == 200
    assert stats.json()['total_users'] == 1

    client.cookies.clear()
    assert client.get('/admin/users').status_code == 401


def test_startup_cleanup_removes_stale_sessions(store) -> None:
    with TestClient(create_app(store)) as client:
        token = client.post('/auth/register', json={'email': 'a@x.com', 'password': 'password123'}).json()['token']

    with store.session() as db:
        db.query(UserSession).filter(UserSession.token == token).update(
            {UserSession.expires_at: utcnow() - timedelta(minutes=1)}
        )
        db.commit()

    with TestClient(create_app(store)):
        pass

    with store.session() as db:
        assert db.query(UserSession).count() == 0
