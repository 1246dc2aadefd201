import httpx
import pytest_asyncio
from tortoise import Tortoise

from models import TransformerSubstation, User
from services import config
from services.cache import summary_cache


@pytest_asyncio.fixture
async def db():
    # fresh in-memory database per test
    await Tortoise.init(config=config.tortoise_config("sqlite://:memory:"))
    await Tortoise.generate_schemas()
    summary_cache.clear()
    yield
    summary_cache.clear()
    await Tortoise.close_connections()


@pytest_asyncio.fixture
async def substation(db):
    return await TransformerSubstation.create(name="ТП-1")


@pytest_asyncio.fixture
async def user(db):
    return await User.create(username="operator", email="operator@example.com", hashed_password="x", is_admin=True)


@pytest_asyncio.fixture
async def client(user):
    from deps import get_current_active_user
    from main import app

    app.dependency_overrides[get_current_active_user] = lambda: user
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as c:
        yield c
    app.dependency_overrides.clear()


@pytest_asyncio.fixture
async def anonymous_client(db):
    from main import app

    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as c:
        yield c
