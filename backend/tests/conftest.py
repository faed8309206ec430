"""
Pytest 配置和共享 fixtures
"""
import os

# 在导入应用之前固定测试环境：内存库、不启动清理任务
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("EXPIRY_SWEEP_ENABLED", "false")

import pytest
from datetime import datetime, timedelta
from decimal import Decimal
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool
from fastapi.testclient import TestClient

from app.database import Base, get_db
from app.models import ontology, snapshots  # noqa: F401
from app.models.ontology import (
    Member, MemberRole, Room, RoomType, Item, InstrumentType, ItemCondition
)
from app.main import app


class FixedClock:
    """可手动推进的时钟"""

    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


@pytest.fixture(scope="function")
def db_engine():
    """创建内存数据库引擎"""
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)


@pytest.fixture(scope="function")
def session_factory(db_engine):
    """会话工厂（事件处理器等需要自建会话的组件使用）"""
    return sessionmaker(autocommit=False, autoflush=False, bind=db_engine)


@pytest.fixture(scope="function")
def db_session(session_factory):
    """创建数据库会话"""
    session = session_factory()
    yield session
    session.close()


@pytest.fixture(scope="function")
def client(db_session):
    """创建测试客户端（不触发 lifespan：不建全局库、不启动调度）"""
    def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def clock():
    """固定时钟：2025-01-01 09:00"""
    return FixedClock(datetime(2025, 1, 1, 9, 0, 0))


class EventRecorder(list):
    """记录发布的事件，代替事件总线注入服务"""

    def publish(self, event) -> None:
        self.append(event)

    def types(self):
        return [e.event_type for e in self]


@pytest.fixture
def published():
    """收集发布的事件"""
    return EventRecorder()


# ============== 会员 Fixtures ==============

def _make_member(db_session, name, email, role=MemberRole.MEMBER, **kwargs):
    member = Member(name=name, email=email, role=role, **kwargs)
    db_session.add(member)
    db_session.commit()
    db_session.refresh(member)
    return member


@pytest.fixture
def sample_member(db_session):
    """普通会员"""
    return _make_member(db_session, "张三", "zhangsan@example.com")


@pytest.fixture
def other_member(db_session):
    """另一位会员"""
    return _make_member(db_session, "李四", "lisi@example.com", role=MemberRole.ARTIST)


@pytest.fixture
def admin_member(db_session):
    """管理员"""
    return _make_member(db_session, "管理员", "admin@example.com", role=MemberRole.ADMIN)


@pytest.fixture
def member_headers(sample_member):
    return {"X-Actor-Id": str(sample_member.id)}


@pytest.fixture
def other_headers(other_member):
    return {"X-Actor-Id": str(other_member.id)}


@pytest.fixture
def admin_headers(admin_member):
    return {"X-Actor-Id": str(admin_member.id)}


# ============== 资源 Fixtures ==============

@pytest.fixture
def sample_room(db_session):
    """排练室，小时费率 20"""
    room = Room(
        name="A 排练室",
        room_type=RoomType.PRACTICE,
        hourly_rate=Decimal("20.00"),
        capacity=6,
        location="二楼",
        is_active=True
    )
    db_session.add(room)
    db_session.commit()
    db_session.refresh(room)
    return room


@pytest.fixture
def sample_room_2(db_session):
    """录音棚，小时费率 50"""
    room = Room(
        name="B 录音棚",
        room_type=RoomType.STUDIO,
        hourly_rate=Decimal("50.00"),
        capacity=4,
        is_active=True
    )
    db_session.add(room)
    db_session.commit()
    db_session.refresh(room)
    return room


@pytest.fixture
def sample_item(db_session):
    """可租乐器，日租金 15"""
    item = Item(
        name="Fender Stratocaster",
        instrument_type=InstrumentType.STRING,
        brand="Fender",
        condition=ItemCondition.GOOD,
        daily_rate=Decimal("15.00"),
        is_available=True
    )
    db_session.add(item)
    db_session.commit()
    db_session.refresh(item)
    return item
