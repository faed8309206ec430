"""
StudioBook 主应用入口
排练室 / 录音棚预订、乐器租赁与会员积分
"""
from contextlib import asynccontextmanager
import logging

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from app.config import settings
from app.database import StorageError, init_db
from app.routers import reservations, resources, rewards, admin

logger = logging.getLogger(__name__)


def configure_logging() -> None:
    logging.basicConfig(
        level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )


def start_scheduler():
    """注册积分过期清理任务，返回调度后端（未启用时返回 None）"""
    if not settings.EXPIRY_SWEEP_ENABLED:
        logger.info("Expiry sweep job disabled")
        return None

    from core.scheduler import SchedulerRegistry
    from app.services.expiry_sweeper import SWEEP_JOB_ID, run_expiry_sweep
    from app.services.scheduler_backend import APSchedulerBackend

    backend = APSchedulerBackend()
    backend.add_job(
        SWEEP_JOB_ID, run_expiry_sweep, "interval",
        minutes=settings.EXPIRY_SWEEP_INTERVAL_MINUTES,
    )
    backend.start()
    SchedulerRegistry().set_backend(backend)
    return backend


@asynccontextmanager
async def lifespan(app: FastAPI):
    """应用生命周期管理"""
    configure_logging()

    # 初始化数据库
    init_db()

    # 写入默认奖励配置
    from app.database import SessionLocal
    from app.services.reward_config_service import RewardConfigService
    db = SessionLocal()
    try:
        config = RewardConfigService(db).snapshot()
        logger.info(f"Reward config v{config.version} loaded")
    finally:
        db.close()

    # 注册事件处理器
    from app.services.event_handlers import register_event_handlers
    register_event_handlers()

    start_scheduler()

    yield

    from core.scheduler import SchedulerRegistry
    SchedulerRegistry().shutdown(wait=False)


# 创建应用
app = FastAPI(
    title="StudioBook",
    description="排练室与乐器预订、会员积分服务",
    version="0.2.0",
    lifespan=lifespan
)

# CORS 配置
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(StorageError)
async def storage_error_handler(request: Request, exc: StorageError):
    """存储故障：与业务错误区分，统一返回 503"""
    return JSONResponse(status_code=503, content={"detail": "存储服务暂不可用，请稍后重试"})


# 注册路由
app.include_router(reservations.router)
app.include_router(resources.router)
app.include_router(rewards.router)
app.include_router(admin.router)


@app.get("/")
def root():
    """根路径"""
    return {
        "name": settings.APP_NAME,
        "version": "0.2.0",
    }


@app.get("/health")
def health_check():
    """健康检查"""
    return {"status": "healthy"}
