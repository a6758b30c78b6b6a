"""
数据库配置和连接管理
"""
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine

from core.config import DatabaseSettings
from core.logging_config import get_logger
from domain.common.exceptions import StoreError
from infrastructure.models import Base


logger = get_logger(__name__)


def driver_message(exc: BaseException) -> str:
    """取底层驱动的错误信息（去掉 SQLAlchemy 的包装与 SQL 文本）"""
    orig = getattr(exc, "orig", None)
    return str(orig) if orig is not None else str(exc)


def create_engine(config: DatabaseSettings, *, echo: bool = False) -> AsyncEngine:
    """创建异步引擎（连接池由 SQLAlchemy 管理，可被并发请求共享）"""
    return create_async_engine(config.url, echo=echo, future=True)


async def ping(engine: AsyncEngine) -> None:
    """测试连接，失败时抛出 StoreError

    asyncpg 建连失败（拒绝连接、不可达）抛出原生 OSError，SQLAlchemy 不做包装
    """
    try:
        async with engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
    except (SQLAlchemyError, OSError) as exc:
        raise StoreError(f"failed to ping database: {driver_message(exc)}") from exc


async def create_tables(engine: AsyncEngine) -> None:
    """
    创建所有表

    仅用于测试环境；生产环境通过 Alembic 迁移建表
    """
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def drop_tables(engine: AsyncEngine) -> None:
    """
    删除所有表

    警告：仅用于测试环境，会删除所有数据！
    """
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
