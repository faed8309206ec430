"""
操作人依赖

身份认证由网关完成，这里只读取网关写入的 X-Actor-Id，
管理员身份以会员记录中的角色为准。
"""
from typing import Optional

from fastapi import Depends, Header, HTTPException, status
from sqlalchemy.orm import Session

from app.database import get_db
from app.domain.actor import Actor
from app.models.ontology import Member


def get_actor(
    x_actor_id: Optional[int] = Header(None, alias="X-Actor-Id"),
    db: Session = Depends(get_db),
) -> Actor:
    """获取当前操作人"""
    if x_actor_id is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="缺少操作人标识")

    member = db.query(Member).filter(Member.id == x_actor_id).first()
    if not member or not member.is_active:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="操作人不存在或已停用")

    return Actor(member_id=member.id, is_admin=member.is_admin)


def require_admin(actor: Actor = Depends(get_actor)) -> Actor:
    """管理端接口"""
    if not actor.is_admin:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="权限不足")
    return actor
