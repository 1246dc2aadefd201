import pytest

from deps import get_current_active_user
from main import app
from models import User
from routers.auth import create_token
from services import config
from services.seeder import pwd_ctx, seed_admin


@pytest.mark.asyncio
async def test_login_and_me(anonymous_client):
    await User.create(username="tp-operator", email="tp@example.com", hashed_password=pwd_ctx.hash("s3cret"))

    r = await anonymous_client.post("/login/access-token", data={"username": "tp-operator", "password": "wrong"})
    assert r.status_code == 401

    r = await anonymous_client.post("/login/access-token", data={"username": "tp-operator", "password": "s3cret"})
    assert r.status_code == 200
    tokens = r.json()
    assert tokens["token_type"] == "bearer"

    r = await anonymous_client.get("/users/me", headers={"Authorization": f"Bearer {tokens['access_token']}"})
    assert r.status_code == 200
    assert r.json()["username"] == "tp-operator"

    # a refresh token is not accepted as an access token
    r = await anonymous_client.get("/users/me", headers={"Authorization": f"Bearer {tokens['refresh_token']}"})
    assert r.status_code == 401


@pytest.mark.asyncio
async def test_refresh(anonymous_client):
    user = await User.create(username="tp-operator", email="tp@example.com", hashed_password="x")

    r = await anonymous_client.post("/login/refresh-token", json={"refresh_token": create_token(user, "refresh")})
    assert r.status_code == 200
    assert set(r.json()) == {"access_token", "refresh_token", "token_type"}

    r = await anonymous_client.post("/login/refresh-token", json={"refresh_token": create_token(user, "access")})
    assert r.status_code == 401


@pytest.mark.asyncio
async def test_delete_needs_admin(anonymous_client, substation):
    user = await User.create(username="viewer", email="viewer@example.com", hashed_password="x")
    app.dependency_overrides[get_current_active_user] = lambda: user
    try:
        r = await anonymous_client.delete(f"/substations/{substation.id}")
    finally:
        app.dependency_overrides.clear()
    assert r.status_code == 403


@pytest.mark.asyncio
async def test_seed_admin_once(db):
    messages = []
    assert await seed_admin(logger=messages.append) is True
    assert await seed_admin(logger=messages.append) is False
    admin = await User.get(is_admin=True)
    assert pwd_ctx.verify(config.ADMIN_PASSWORD, admin.hashed_password)
