"""
用户领域实体
"""
from dataclasses import dataclass


@dataclass(frozen=True)
class User:
    """用户实体

    id 由存储层分配（序列单调递增），分配后不可变且不会复用。
    email 不做唯一性约束，重复邮箱按原样接受。
    """

    id: int
    email: str
    name: str
