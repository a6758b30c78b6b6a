import pytest
from sqlalchemy import text

from core.config import DatabaseSettings
from domain.common.exceptions import StoreError
from infrastructure.database import create_engine
from infrastructure.repositories.user_repository import SQLAlchemyUserRepository, open_store


pytestmark = pytest.mark.asyncio


async def test_create_user_assigns_id(user_repository):
    user = await user_repository.create_user(email="jdoe@example.com", name="John Doe")
    assert user.id == 1
    assert user.email == "jdoe@example.com"
    assert user.name == "John Doe"


async def test_list_users_returns_created(user_repository):
    await user_repository.create_user(email="a@example.com", name="A")
    await user_repository.create_user(email="b@example.com", name="B")

    users = await user_repository.list_users()
    assert sorted((u.id, u.email, u.name) for u in users) == [
        (1, "a@example.com", "A"),
        (2, "b@example.com", "B"),
    ]


async def test_list_users_empty(user_repository):
    assert await user_repository.list_users() == []


async def test_duplicate_email_gets_distinct_ids(user_repository):
    first = await user_repository.create_user(email="dup@example.com", name="One")
    second = await user_repository.create_user(email="dup@example.com", name="Two")
    assert first.id != second.id
    assert second.id > first.id


async def test_open_store_unreachable_raises_store_error(tmp_path):
    missing = tmp_path / "no-such-dir" / "users.db"
    with pytest.raises(StoreError):
        await open_store(DatabaseSettings(dsn=f"sqlite+aiosqlite:///{missing}"))


async def test_missing_table_raises_store_error(sqlite_settings):
    repo = await open_store(sqlite_settings)
    try:
        with pytest.raises(StoreError) as ei:
            await repo.create_user(email="x@example.com", name="X")
        assert "users" in ei.value.message
    finally:
        await repo.close()


async def test_non_numeric_id_fails_list(sqlite_settings):
    repo = await open_store(sqlite_settings)
    try:
        async with repo.engine.begin() as conn:
            await conn.execute(text("CREATE TABLE users (id TEXT, email TEXT, name TEXT)"))
            await conn.execute(text(
                "INSERT INTO users (id, email, name) VALUES ('not-a-number', 'x@example.com', 'X')"
            ))
        with pytest.raises(StoreError) as ei:
            await repo.list_users()
        assert "not-a-number" in ei.value.message
    finally:
        await repo.close()


@pytest.fixture
def unreachable_postgres() -> DatabaseSettings:
    # nothing listens on port 1, the connect call is refused by the kernel
    return DatabaseSettings(host="127.0.0.1", port=1, name="users")


async def test_open_store_refused_connection_raises_store_error(unreachable_postgres):
    with pytest.raises(StoreError) as ei:
        await open_store(unreachable_postgres)
    assert "Connect call failed" in ei.value.message or "refused" in ei.value.message.lower()


async def test_refused_connection_during_requests_raises_store_error(unreachable_postgres):
    repo = SQLAlchemyUserRepository(create_engine(unreachable_postgres))
    try:
        with pytest.raises(StoreError):
            await repo.list_users()
        with pytest.raises(StoreError):
            await repo.create_user(email="x@example.com", name="X")
    finally:
        await repo.close()
