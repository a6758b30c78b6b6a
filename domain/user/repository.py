"""
用户仓储接口 - 定义数据访问的抽象接口
"""
from abc import ABC, abstractmethod
from typing import List

from .entity import User


class UserRepository(ABC):
    """用户仓储抽象接口 - 只定义能做什么，不管怎么做

    每个操作恰好一次数据库往返，不跨语句开启事务，失败时抛出 StoreError 且不重试。
    """

    @abstractmethod
    async def create_user(self, email: str, name: str) -> User:
        """插入一行并返回带有存储分配ID的完整实体"""
        pass

    @abstractmethod
    async def list_users(self) -> List[User]:
        """返回表中全部用户（存储原生顺序）；空表返回空列表"""
        pass

    @abstractmethod
    async def close(self) -> None:
        """释放底层连接"""
        pass
