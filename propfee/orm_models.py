from sqlalchemy import Column, String, DECIMAL, DateTime, ForeignKey, BigInteger, Integer
from sqlalchemy.dialects import mysql
from .database import Base


class Department(Base):
    __tablename__ = "departments"

    id = Column(String(64), primary_key=True, index=True)
    name = Column(String(255), nullable=False)
    color = Column(String(32), nullable=False, default="#6366f1")
    target_amount = Column(DECIMAL(20, 2), nullable=True)


class Staff(Base):
    __tablename__ = "staff"

    id = Column(String(64), primary_key=True, index=True)
    name = Column(String(255), nullable=False)
    # 部门删除后置空，人员保留
    dept_id = Column(String(64), ForeignKey("departments.id", ondelete="SET NULL"), nullable=True, index=True)
    collected_amount = Column(DECIMAL(20, 2), nullable=False, default=0)
    target_amount = Column(DECIMAL(20, 2), nullable=False, default=0)


class FeeRecord(Base):
    __tablename__ = "fees"

    # 插入顺序，时间戳相同时用于倒序排序
    seq = Column(BigInteger().with_variant(Integer, "sqlite"), primary_key=True, autoincrement=True)
    id = Column(String(64), nullable=False, unique=True, index=True)
    # 人员删除后级联删除其收费记录
    staff_id = Column(String(64), ForeignKey("staff.id", ondelete="CASCADE"), nullable=False, index=True)
    amount = Column(DECIMAL(20, 2), nullable=False)
    # MySQL 默认 DATETIME 只精确到秒
    timestamp = Column(DateTime().with_variant(mysql.DATETIME(fsp=6), "mysql"), nullable=False, index=True)


class User(Base):
    __tablename__ = "users"

    id = Column(String(64), primary_key=True, index=True)
    username = Column(String(64), nullable=False, unique=True, index=True)
    password_hash = Column(String(255), nullable=False)
    display_name = Column(String(255), nullable=False)
    role = Column(String(16), nullable=False, default="staff")  # admin, staff
