import pytest
import sys
import os
from decimal import Decimal

# 测试使用内存 SQLite，且不访问真实 AI 接口
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("AI_API_KEY", "")
os.environ.setdefault("PASSWORD_HASH_ITERATIONS", "1000")
os.environ.setdefault("RECONCILE_INTERVAL_SECONDS", "0")

# 将项目根目录添加到sys.path，以便导入propfee模块
sys.path.append(os.path.abspath(os.path.join(os.path.dirname(__file__), "../")))

from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from propfee.database import Base, create_db_engine
from propfee.orm_models import Department, Staff


class FakeAiService:
    """记录调用次数的 AI 服务替身"""

    def __init__(self, text="1. 加强住宅二部催缴。"):
        self.text = text
        self.calls = []

    def summarize(self, departments, staff, records):
        self.calls.append((list(departments), list(staff), list(records)))
        return self.text


@pytest.fixture
def engine():
    engine = create_db_engine("sqlite://", poolclass=StaticPool)
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def seeded(db):
    """两个部门，A(100/200) 与 B(150/200)"""
    db.add_all([
        Department(id="dept-a", name="住宅一部", color="#6366f1"),
        Department(id="dept-b", name="住宅二部", color="#10b981"),
    ])
    db.add_all([
        Staff(id="s-a", name="A", dept_id="dept-a", collected_amount=Decimal("100"), target_amount=Decimal("200")),
        Staff(id="s-b", name="B", dept_id="dept-b", collected_amount=Decimal("150"), target_amount=Decimal("200")),
    ])
    db.commit()
    return db


@pytest.fixture
def fake_ai():
    return FakeAiService()
