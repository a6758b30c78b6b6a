"""应用异常定义，供领域、基础设施与进程管理层共同使用。

核心（core）层仅负责网关侧的异常映射，领域层不反向依赖核心层。
"""
from __future__ import annotations

from typing import Optional


class AppException(Exception):
    """应用异常基类"""

    error_type: str = "AppError"

    def __init__(self, message: str, *, details: Optional[dict] = None) -> None:
        self.message = message
        self.details = details
        super().__init__(self.message)


class ConfigError(AppException):
    """配置缺失或格式错误（启动阶段致命）"""

    error_type = "ConfigError"


class MigrationError(AppException):
    """数据库迁移失败（启动阶段致命，不会启动任何监听）"""

    error_type = "MigrationError"


class StoreError(AppException):
    """存储层错误：连接失败、约束冲突、行数据解码失败。

    message 仅包含底层数据库驱动给出的信息，原样透传给调用方，不做重试。
    """

    error_type = "StoreError"


class ListenerError(AppException):
    """端口绑定失败（启动阶段致命）"""

    error_type = "ListenerError"

    def __init__(self, address: str, reason: str) -> None:
        self.address = address
        super().__init__(f"failed to listen on {address}: {reason}", details={"address": address})
