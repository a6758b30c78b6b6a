"""
应用入口

    users-api --db-host localhost --grpc-port 8080 --http-port 8081

配置非法时以退出码 1 结束；其余退出码由 Supervisor 决定。
"""
import asyncio
import sys
from typing import Optional, Sequence

from core.config import load_settings
from core.logging_config import configure_logging, get_logger
from domain.common.exceptions import ConfigError
from supervisor import Supervisor


logger = get_logger(__name__)


async def serve(supervisor: Supervisor) -> int:
    supervisor.install_signal_handlers()
    return await supervisor.run()


def run(argv: Optional[Sequence[str]] = None) -> None:
    """命令行入口（console script: users-api）"""
    try:
        settings = load_settings(argv)
    except ConfigError as exc:
        configure_logging()
        logger.error("invalid_configuration", error=exc.message)
        sys.exit(1)

    configure_logging(debug=settings.DEBUG)
    logger.info(
        "application_starting",
        project=settings.PROJECT_NAME,
        version=settings.VERSION,
        database=settings.database.describe(),
    )

    code = asyncio.run(serve(Supervisor(settings)))
    logger.info("application_exited", exit_code=code)
    sys.exit(code)


if __name__ == "__main__":
    run()
