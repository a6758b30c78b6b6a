"""
启动时执行数据库迁移（Alembic upgrade head）

版本按顺序应用；数据库已是最新版本时为空操作，不视为错误。
"""
import asyncio

from alembic import command
from alembic.config import Config

from core.config import Settings
from core.logging_config import get_logger
from domain.common.exceptions import MigrationError


logger = get_logger(__name__)


def build_alembic_config(settings: Settings) -> Config:
    cfg = Config()
    cfg.set_main_option("script_location", settings.migrations.script_location)
    # ConfigParser 会对 % 做插值，连接串中的百分号编码需要转义
    cfg.set_main_option("sqlalchemy.url", settings.database.url.replace("%", "%%"))
    cfg.attributes["configure_logger"] = False
    return cfg


def upgrade_to_head(settings: Settings) -> None:
    """同步执行迁移；env.py 内部会自行创建事件循环，因此必须在独立线程中调用"""
    command.upgrade(build_alembic_config(settings), "head")


async def run_migrations(settings: Settings) -> None:
    """应用所有待执行迁移，任何失败都包装为 MigrationError"""
    if not settings.migrations.enabled:
        logger.info("database_migrations_skipped", message="MIGRATIONS__ENABLED=false")
        return
    logger.info("database_migrations_started", script_location=settings.migrations.script_location)
    try:
        await asyncio.to_thread(upgrade_to_head, settings)
    except Exception as exc:
        raise MigrationError(f"failed to run migrations: {exc}") from exc
    logger.info("database_migrations_completed")
