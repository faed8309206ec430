"""
数据库配置 - SQLAlchemy 持久化层
业务规则全部在服务层，数据库只负责持久化；
存储故障统一转换为 StorageError，与业务错误分类严格区分。
"""
from contextlib import contextmanager
import logging

from sqlalchemy import create_engine, event
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import sessionmaker, declarative_base, Session

from app.config import settings

logger = logging.getLogger(__name__)


def _engine_kwargs(url: str) -> dict:
    if url.startswith("sqlite"):
        return {"connect_args": {"check_same_thread": False}}
    return {"pool_pre_ping": True, "pool_recycle": 300}


def enable_sqlite_wal(target_engine) -> None:
    """SQLite 启用 WAL 模式以提高并发读写"""
    if target_engine.dialect.name != "sqlite":
        return
    if target_engine.url.database in (None, "", ":memory:"):
        return

    @event.listens_for(target_engine, "connect")
    def _set_pragmas(dbapi_conn, _record):
        cursor = dbapi_conn.cursor()
        cursor.execute("PRAGMA journal_mode=WAL")
        cursor.execute("PRAGMA synchronous=NORMAL")
        cursor.execute("PRAGMA busy_timeout=5000")
        cursor.close()


engine = create_engine(settings.DATABASE_URL, **_engine_kwargs(settings.DATABASE_URL))
enable_sqlite_wal(engine)

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

Base = declarative_base()


class StorageError(RuntimeError):
    """存储层故障（I/O、连接、约束冲突等），对调用方不透明"""


def get_db():
    """依赖注入：获取数据库会话"""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


@contextmanager
def storage_guard(db: Session, operation: str):
    """
    包裹一次读-改-写：SQLAlchemy 异常回滚后以 StorageError 抛出

    Args:
        db: 当前会话
        operation: 操作名（用于日志）
    """
    try:
        yield
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"Storage failure during {operation}: {e}", exc_info=True)
        raise StorageError(f"{operation} failed") from e


def init_db(target_engine=None):
    """初始化数据库表"""
    from app.models import ontology  # noqa
    from app.models import snapshots  # noqa - 奖励配置版本历史表
    bind = target_engine or engine
    Base.metadata.create_all(bind=bind)
