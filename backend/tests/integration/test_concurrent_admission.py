"""
并发准入测试

多个线程各自持有会话，同时预订同一资源的重叠时段：只能有一个成功。
使用文件库，让每个会话拥有独立连接。
"""
import threading
from datetime import datetime
from decimal import Decimal

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from app.database import Base, enable_sqlite_wal
from app.domain.errors import ErrorKind
from app.domain.tiers import DEFAULT_REWARD_CONFIG
from app.models.ontology import (
    LedgerCategory, LedgerEntry, Member, Reservation, Room, RoomType
)
from app.services.ledger_service import LedgerService
from app.services.reservation_service import ReservationService

WORKERS = 8


@pytest.fixture
def file_factory(tmp_path):
    engine = create_engine(
        f"sqlite:///{tmp_path / 'concurrency.db'}",
        connect_args={"check_same_thread": False, "timeout": 30},
    )
    enable_sqlite_wal(engine)
    Base.metadata.create_all(bind=engine)
    yield sessionmaker(autocommit=False, autoflush=False, bind=engine)
    engine.dispose()


@pytest.fixture
def seeded(file_factory):
    db = file_factory()
    members = [Member(name=f"会员{i}", email=f"m{i}@example.com") for i in range(WORKERS)]
    rooms = [
        Room(name="A 排练室", room_type=RoomType.PRACTICE, hourly_rate=Decimal("20")),
        Room(name="B 排练室", room_type=RoomType.PRACTICE, hourly_rate=Decimal("20")),
    ]
    db.add_all(members + rooms)
    db.commit()
    ids = {"members": [m.id for m in members], "rooms": [r.id for r in rooms]}
    db.close()
    return ids


def _run_parallel(file_factory, work):
    """每个线程一个会话，同时开始"""
    barrier = threading.Barrier(WORKERS)
    results = [None] * WORKERS
    errors = []

    def runner(index):
        db = file_factory()
        try:
            barrier.wait()
            results[index] = work(db, index)
        except Exception as e:  # 线程内异常交给主线程断言
            errors.append(e)
        finally:
            db.close()

    threads = [threading.Thread(target=runner, args=(i,)) for i in range(WORKERS)]
    for t in threads:
        t.start()
    for t in threads:
        t.join(timeout=60)
    assert errors == []
    return results


def test_overlapping_requests_admit_exactly_one(file_factory, seeded):
    room_id = seeded["rooms"][0]

    def work(db, index):
        service = ReservationService(db, event_publisher=lambda e: None)
        # 每个请求错开一小时，但两两之间都有重叠
        start = datetime(2030, 6, 1, 8 + index % 2)
        end = datetime(2030, 6, 1, 12)
        return service.reserve(room_id, start, end, seeded["members"][index])

    results = _run_parallel(file_factory, work)

    admitted = [r for r in results if r.success]
    assert len(admitted) == 1
    assert all(r.error_kind == ErrorKind.SLOT_UNAVAILABLE.value for r in results if not r.success)

    db = file_factory()
    assert db.query(Reservation).filter(Reservation.resource_id == room_id).count() == 1
    db.close()


def test_different_resources_do_not_block(file_factory, seeded):
    def work(db, index):
        service = ReservationService(db, event_publisher=lambda e: None)
        room_id = seeded["rooms"][index % 2]
        hour = 8 + index // 2
        return service.reserve(
            room_id, datetime(2030, 6, 1, hour), datetime(2030, 6, 1, hour + 1), seeded["members"][index]
        )

    results = _run_parallel(file_factory, work)
    assert all(r.success for r in results)


def test_concurrent_postings_are_not_lost(file_factory, seeded):
    member_id = seeded["members"][0]

    def work(db, index):
        ledger = LedgerService(db, event_publisher=lambda e: None)
        return ledger.post_entry(member_id, 15, LedgerCategory.PURCHASE, DEFAULT_REWARD_CONFIG)

    results = _run_parallel(file_factory, work)
    assert all(r.success for r in results)

    db = file_factory()
    member = db.query(Member).filter(Member.id == member_id).one()
    assert db.query(LedgerEntry).count() == WORKERS
    assert member.points_total == 15 * WORKERS
    assert member.tier == "Silver"
    db.close()
