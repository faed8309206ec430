"""
管理端路由
预订列表、奖励配置维护、手动触发积分过期清理
"""
from typing import List, Optional
from datetime import date
from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session
from app.database import get_db
from app.domain.actor import Actor
from app.domain.tiers import RewardConfigSnapshot, RewardConfigUpdate
from app.models.ontology import PaymentStatus, ReservationStatus, ResourceKind
from app.models.schemas import (
    ConfigHistoryResponse, ReservationResponse, RewardConfigChange,
    RewardConfigResponse, SweepReportResponse
)
from app.routers.errors import unwrap_or_raise
from app.security.actor import require_admin
from app.services.config_history_service import ConfigHistoryService
from app.services.expiry_sweeper import ExpirySweeper
from app.services.reservation_service import ReservationService
from app.services.reward_config_service import RewardConfigService

router = APIRouter(prefix="/admin", tags=["管理端"])


def _config_response(snapshot: RewardConfigSnapshot) -> RewardConfigResponse:
    return RewardConfigResponse(
        version=snapshot.version,
        tiers=[t.model_dump() for t in snapshot.tiers],
        point_values=snapshot.point_values,
        expiry_enabled=snapshot.expiry.enabled,
        expiry_duration_days=snapshot.expiry.duration_days,
    )


@router.get("/reservations", response_model=List[ReservationResponse])
def list_reservations(
    status: Optional[ReservationStatus] = None,
    payment_status: Optional[PaymentStatus] = None,
    resource_kind: Optional[ResourceKind] = None,
    day: Optional[date] = Query(None, description="只看当天占用的预订"),
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_admin)
):
    """全部预订"""
    service = ReservationService(db)
    return unwrap_or_raise(service.list_all(
        actor, status=status, payment_status=payment_status, resource_kind=resource_kind, day=day
    ))


@router.get("/rewards/config", response_model=RewardConfigResponse)
def get_reward_config(
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_admin)
):
    """当前奖励配置"""
    return _config_response(RewardConfigService(db).snapshot())


@router.put("/rewards/config", response_model=RewardConfigResponse)
def update_reward_config(
    data: RewardConfigChange,
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_admin)
):
    """修改奖励配置（部分合并），保存后所有会员重新分级"""
    update = RewardConfigUpdate(**data.model_dump(exclude={"reason"}))
    snapshot = unwrap_or_raise(RewardConfigService(db).update_config(update, actor, reason=data.reason))
    return _config_response(snapshot)


@router.get("/rewards/config/history", response_model=List[ConfigHistoryResponse])
def get_reward_config_history(
    limit: int = Query(20, ge=1, le=100),
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_admin)
):
    """奖励配置版本历史"""
    return [
        ConfigHistoryService.decode(h)
        for h in RewardConfigService(db).get_history(limit=limit)
    ]


@router.post("/rewards/sweep", response_model=SweepReportResponse)
def run_sweep(
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_admin)
):
    """立即执行一次积分过期清理"""
    return ExpirySweeper(db).run()
