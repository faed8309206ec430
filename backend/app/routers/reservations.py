"""
预订管理路由
"""
from typing import List
from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session
from app.database import get_db
from app.domain.actor import Actor
from app.models.schemas import (
    ReservationCreate, ReservationStatusUpdate, PaymentStatusUpdate,
    ReservationCancel, ReservationResponse
)
from app.routers.errors import unwrap_or_raise
from app.security.actor import get_actor
from app.services.reservation_service import ReservationService

router = APIRouter(prefix="/reservations", tags=["预订管理"])


@router.post("", response_model=ReservationResponse, status_code=201)
def create_reservation(
    data: ReservationCreate,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_actor)
):
    """创建预订 / 租赁（申请人为当前操作人）"""
    service = ReservationService(db)
    return unwrap_or_raise(service.reserve(
        data.resource_id, data.start_at, data.end_at, actor.member_id, notes=data.notes
    ))


@router.get("/mine", response_model=List[ReservationResponse])
def list_my_reservations(
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_actor)
):
    """我的预订"""
    return ReservationService(db).list_for_requester(actor.member_id)


@router.get("/{reservation_id}", response_model=ReservationResponse)
def get_reservation(
    reservation_id: int,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_actor)
):
    """获取预订详情"""
    return unwrap_or_raise(ReservationService(db).get_reservation(reservation_id, actor))


@router.post("/{reservation_id}/status", response_model=ReservationResponse)
def update_status(
    reservation_id: int,
    data: ReservationStatusUpdate,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_actor)
):
    """修改预订状态"""
    service = ReservationService(db)
    return unwrap_or_raise(service.update_status(reservation_id, data.status, actor, reason=data.reason))


@router.post("/{reservation_id}/payment-status", response_model=ReservationResponse)
def update_payment_status(
    reservation_id: int,
    data: PaymentStatusUpdate,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_actor)
):
    """修改支付状态（管理员）"""
    service = ReservationService(db)
    return unwrap_or_raise(service.update_payment_status(reservation_id, data.payment_status, actor))


@router.post("/{reservation_id}/cancel", response_model=ReservationResponse)
def cancel_reservation(
    reservation_id: int,
    data: ReservationCancel = None,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_actor)
):
    """取消预订"""
    service = ReservationService(db)
    reason = data.reason if data else None
    return unwrap_or_raise(service.cancel(reservation_id, actor, reason=reason))
