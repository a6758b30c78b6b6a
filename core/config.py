"""
配置文件 - 项目配置管理

优先级：命令行参数 > 扁平环境变量（DB_HOST、DATABRICKS_TOKEN 等） > 嵌套环境变量/.env（DATABASE__HOST 等） > 默认值
"""
import argparse
import os
from pathlib import Path
from typing import Optional, Sequence
from urllib.parse import quote_plus

from pydantic import BaseModel, Field, ValidationError, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict
from sqlalchemy.engine import make_url

from domain.common.exceptions import ConfigError


BASE_DIR = Path(__file__).resolve().parent.parent

# libpq sslmode -> asyncpg ssl 参数
_SSLMODES = {"disable", "allow", "prefer", "require", "verify-ca", "verify-full"}

# Databricks 导出目标的扁平变量名 -> TelemetrySettings 字段
DATABRICKS_ENV = {
    "DATABRICKS_WORKSPACE_URL": "workspace_url",
    "DATABRICKS_TOKEN": "token",
    "DATABRICKS_UC_TABLE_NAME": "uc_table_name",
    "DATABRICKS_UC_METRICS_TABLE_NAME": "uc_metrics_table_name",
}


class DatabaseSettings(BaseModel):
    host: str = "localhost"
    port: int = 5432
    user: str = "postgres"
    password: str = "postgres"
    name: str = "go_api_template"
    sslmode: str = "disable"
    # 直接指定完整连接串时忽略上面的分项（测试中用于 sqlite+aiosqlite）
    dsn: Optional[str] = None

    @field_validator("sslmode")
    @classmethod
    def _check_sslmode(cls, v: str) -> str:
        if v not in _SSLMODES:
            raise ValueError(f"unsupported sslmode {v!r}, expected one of {sorted(_SSLMODES)}")
        return v

    @property
    def url(self) -> str:
        """SQLAlchemy 异步连接串"""
        if self.dsn:
            return _build_async_url(self.dsn)
        return (
            f"postgresql+asyncpg://{quote_plus(self.user)}:{quote_plus(self.password)}"
            f"@{self.host}:{self.port}/{self.name}?ssl={self.sslmode}"
        )

    def describe(self) -> str:
        """不含口令的连接描述，用于日志"""
        if self.dsn:
            return make_url(self.dsn).render_as_string(hide_password=True)
        return f"{self.host}:{self.port}/{self.name}"


def _build_async_url(database_url: str) -> str:
    """确保数据库URL使用异步驱动"""
    url = make_url(database_url)
    drivername = url.drivername

    if "+" in drivername:
        return database_url

    driver_map = {
        "postgresql": "postgresql+asyncpg",
        "postgres": "postgresql+asyncpg",
        "sqlite": "sqlite+aiosqlite",
    }

    if drivername not in driver_map:
        raise ValueError(f"不支持的数据库驱动: {drivername}. 请使用 async 驱动或更新 DATABASE__DSN")

    return url.set(drivername=driver_map[drivername]).render_as_string(hide_password=False)


class GrpcSettings(BaseModel):
    host: str = "0.0.0.0"
    port: int = 8080
    # This maps to GRPC option grpc.max_concurrent_streams
    max_concurrent_streams: int = 100


class GatewaySettings(BaseModel):
    host: str = "0.0.0.0"
    port: int = 8081
    # 关闭时等待在途 HTTP/RPC 请求结束的上限（秒）
    drain_timeout: float = 10.0


class TelemetrySettings(BaseModel):
    service_name: str = "users-api"
    service_version: str = Field(default_factory=lambda: os.environ.get("SERVICE_VERSION") or "unknown")
    # Databricks OTLP/HTTP 导出配置；缺失任一项时不导出
    workspace_url: Optional[str] = None
    token: Optional[str] = None
    uc_table_name: Optional[str] = None
    uc_metrics_table_name: Optional[str] = None
    shutdown_timeout: float = 30.0


class MigrationSettings(BaseModel):
    enabled: bool = True
    script_location: str = str(BASE_DIR / "alembic")


class Settings(BaseSettings):
    """项目配置"""

    PROJECT_NAME: str = "users-api"
    VERSION: str = "1.0.0"
    DEBUG: bool = False

    database: DatabaseSettings = Field(default_factory=DatabaseSettings)
    grpc: GrpcSettings = Field(default_factory=GrpcSettings)
    gateway: GatewaySettings = Field(default_factory=GatewaySettings)
    telemetry: TelemetrySettings = Field(default_factory=TelemetrySettings)
    migrations: MigrationSettings = Field(default_factory=MigrationSettings)

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=False,
        extra="ignore",
        env_nested_delimiter="__",
    )


def build_arg_parser() -> argparse.ArgumentParser:
    """命令行参数；默认值取自扁平环境变量，未设置时交给 Settings 处理"""
    env = os.environ.get
    parser = argparse.ArgumentParser(prog="users-api", description="Users gRPC API with REST gateway")
    parser.add_argument("--db-host", default=env("DB_HOST"), help="Database host")
    parser.add_argument("--db-port", default=env("DB_PORT"), help="Database port")
    parser.add_argument("--db-user", default=env("DB_USER"), help="Database user")
    parser.add_argument("--db-password", default=env("DB_PASSWORD"), help="Database password")
    parser.add_argument("--db-name", default=env("DB_NAME"), help="Database name")
    parser.add_argument("--db-ssl-mode", default=env("DB_SSLMODE"), help="Database SSL mode")
    parser.add_argument("--grpc-port", default=None, help="gRPC listen port")
    parser.add_argument("--http-port", default=None, help="REST gateway listen port")
    return parser


def load_settings(argv: Optional[Sequence[str]] = None) -> Settings:
    """合并 .env/环境变量/命令行，任何非法值都转换为 ConfigError"""
    args = build_arg_parser().parse_args(argv)

    database = {
        "host": args.db_host,
        "port": args.db_port,
        "user": args.db_user,
        "password": args.db_password,
        "name": args.db_name,
        "sslmode": args.db_ssl_mode,
    }
    database = {k: v for k, v in database.items() if v is not None}
    telemetry = {field: os.environ[var] for var, field in DATABRICKS_ENV.items() if os.environ.get(var)}

    try:
        base = Settings()
        update = {}
        if database:
            update["database"] = DatabaseSettings.model_validate({**base.database.model_dump(), **database})
        if args.grpc_port is not None:
            update["grpc"] = GrpcSettings.model_validate({**base.grpc.model_dump(), "port": args.grpc_port})
        if args.http_port is not None:
            update["gateway"] = GatewaySettings.model_validate({**base.gateway.model_dump(), "port": args.http_port})
        if telemetry:
            update["telemetry"] = TelemetrySettings.model_validate({**base.telemetry.model_dump(), **telemetry})
    except ValidationError as exc:
        raise ConfigError(f"invalid configuration: {exc}") from exc

    return base.model_copy(update=update) if update else base
