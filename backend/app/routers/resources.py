"""
资源可用性路由
"""
from typing import Optional
from datetime import date
from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session
from app.database import get_db
from app.models.schemas import AvailabilityResponse
from app.routers.errors import unwrap_or_raise
from app.services.reservation_service import ReservationService

router = APIRouter(prefix="/resources", tags=["资源"])


@router.get("/{resource_id}/availability", response_model=AvailabilityResponse)
def get_availability(
    resource_id: int,
    start: date = Query(..., description="房间为查询日期；乐器为起始日期"),
    end: Optional[date] = Query(None, description="乐器的结束日期（含）"),
    db: Session = Depends(get_db)
):
    """资源可用性：房间按整点时段，乐器按天"""
    view = unwrap_or_raise(ReservationService(db).get_availability(resource_id, start, end))
    return AvailabilityResponse.model_validate(view)
