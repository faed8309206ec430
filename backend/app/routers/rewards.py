"""
积分路由
"""
from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session
from app.config import settings
from app.database import get_db
from app.domain.actor import Actor
from app.models.schemas import AccountSummaryResponse, LedgerEntryResponse, PointsPost
from app.routers.errors import unwrap_or_raise
from app.security.actor import get_actor, require_admin
from app.services.ledger_service import LedgerService
from app.services.reward_config_service import RewardConfigService

router = APIRouter(prefix="/rewards", tags=["积分"])


def _summary(db: Session, member_id: int):
    config = RewardConfigService(db).snapshot()
    summary = unwrap_or_raise(LedgerService(db).summary(
        member_id, config, history_limit=settings.RECENT_HISTORY_LIMIT
    ))
    return AccountSummaryResponse.model_validate(summary)


@router.get("/me", response_model=AccountSummaryResponse)
def get_my_rewards(
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_actor)
):
    """我的积分"""
    return _summary(db, actor.member_id)


@router.get("/{member_id}", response_model=AccountSummaryResponse)
def get_member_rewards(
    member_id: int,
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_admin)
):
    """会员积分（管理员）"""
    return _summary(db, member_id)


@router.post("/points", response_model=LedgerEntryResponse, status_code=201)
def post_points(
    data: PointsPost,
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_admin)
):
    """
    结算方记账

    购物等结算完成后调用；给出 amount 直接记账，否则按积分值和 spend 计算。
    """
    config = RewardConfigService(db).snapshot()
    ledger = LedgerService(db)
    fields = dict(
        description=data.description,
        reference_type=data.reference_type,
        reference_id=data.reference_id,
    )
    if data.amount is not None:
        result = ledger.post_entry(data.member_id, data.amount, data.category, config, **fields)
    else:
        result = ledger.accrue(data.member_id, data.category, config, spend=data.spend, **fields)
    entry = unwrap_or_raise(result)
    if entry is None:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail="按当前积分值计算积分为 0，未记账")
    return entry
