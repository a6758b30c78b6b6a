"""
用户仓储实现 - 使用SQLAlchemy实现数据访问
"""
from typing import Any, List

from sqlalchemy import insert, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine

from core.config import DatabaseSettings
from core.logging_config import get_logger
from domain.common.exceptions import StoreError
from domain.user.entity import User
from domain.user.repository import UserRepository
from infrastructure.database import create_engine, driver_message, ping
from infrastructure.models.user import UserModel


logger = get_logger(__name__)


def _decode_id(raw: Any) -> int:
    """行数据中的 id 必须是整数；损坏数据直接报错而不是跳过"""
    if isinstance(raw, bool) or not isinstance(raw, (int, str)):
        raise StoreError(f"cannot decode users.id value {raw!r}: expected integer")
    try:
        return int(raw)
    except ValueError as exc:
        raise StoreError(f"cannot decode users.id value {raw!r}: {exc}") from exc


class SQLAlchemyUserRepository(UserRepository):
    """用户仓储的SQLAlchemy实现

    直接使用引擎而非会话：每个操作是一条参数化语句，一次往返，
    不保留跨请求状态，因此实例可被并发请求共享。
    """

    def __init__(self, engine: AsyncEngine):
        self.engine = engine

    def _to_entity(self, row: Any) -> User:
        """将查询结果行转换为领域实体"""
        return User(id=_decode_id(row.id), email=row.email, name=row.name)

    async def create_user(self, email: str, name: str) -> User:
        """创建用户（INSERT ... RETURNING id）"""
        stmt = insert(UserModel).values(email=email, name=name).returning(UserModel.id)
        try:
            async with self.engine.begin() as conn:
                result = await conn.execute(stmt)
                user_id = result.scalar_one()
        except (SQLAlchemyError, OSError) as exc:
            logger.warning("create_user_failed", error=driver_message(exc))
            raise StoreError(driver_message(exc)) from exc
        return User(id=_decode_id(user_id), email=email, name=name)

    async def list_users(self) -> List[User]:
        """获取全部用户；不指定排序，顺序由存储决定"""
        stmt = select(UserModel.id, UserModel.email, UserModel.name)
        try:
            async with self.engine.connect() as conn:
                result = await conn.execute(stmt)
                rows = result.all()
        except (SQLAlchemyError, OSError) as exc:
            logger.warning("list_users_failed", error=driver_message(exc))
            raise StoreError(driver_message(exc)) from exc
        return [self._to_entity(row) for row in rows]

    async def close(self) -> None:
        """释放连接池"""
        logger.info("database_closing")
        try:
            await self.engine.dispose()
        except (SQLAlchemyError, OSError) as exc:
            raise StoreError(driver_message(exc)) from exc


async def open_store(config: DatabaseSettings) -> SQLAlchemyUserRepository:
    """建立连接并 ping，成功后返回仓储"""
    logger.info("database_connecting", target=config.describe())
    engine = create_engine(config)
    try:
        await ping(engine)
    except StoreError:
        await engine.dispose()
        raise
    return SQLAlchemyUserRepository(engine)
