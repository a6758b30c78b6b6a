"""
用户数据库模型 - SQLAlchemy ORM模型
注意：这是基础设施层的实现细节，不是领域模型
"""
from sqlalchemy import Column, Integer, Sequence, Text

from .base import Base


# 与迁移 0001 中创建的序列一致；sqlite 等不支持序列的方言会忽略
users_id_seq = Sequence("seq_users_id", start=1)


class UserModel(Base):
    """
    用户数据库模型

    这是数据库表的映射，不包含业务逻辑；email 不设唯一约束
    """
    __tablename__ = "users"

    id = Column(Integer, users_id_seq, primary_key=True)
    email = Column(Text, nullable=False)
    name = Column(Text, nullable=False)

    def __repr__(self):
        return f"<UserModel(id={self.id}, email='{self.email}', name='{self.name}')>"
