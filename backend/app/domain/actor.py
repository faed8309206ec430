"""操作人"""
from dataclasses import dataclass


@dataclass(frozen=True)
class Actor:
    """
    发起操作的会员

    身份由接入层确认后传入核心，核心只做权限判断。
    """
    member_id: int
    is_admin: bool = False

    def owns(self, requester_id: int) -> bool:
        return self.member_id == requester_id

    def may_act_on(self, requester_id: int) -> bool:
        """预订的申请人或管理员"""
        return self.is_admin or self.owns(requester_id)
