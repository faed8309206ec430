"""
业务错误分类

核心操作以 Result.fail(ErrorKind.X, ...) 返回这些错误，
调用方据此区分"请求不合法"与"系统故障"（后者是 StorageError 异常）。
"""
from enum import Enum


class ErrorKind(str, Enum):
    INVALID_RANGE = "InvalidRange"                  # 结束不晚于开始，或不满足粒度
    RESOURCE_UNAVAILABLE = "ResourceUnavailable"    # 资源停用 / 不可租
    SLOT_UNAVAILABLE = "SlotUnavailable"            # 时段冲突
    UNAUTHORIZED = "Unauthorized"                   # 操作人无权执行该操作
    INVALID_TRANSITION = "InvalidTransition"        # 终态违例，例如取消已完成的预订
    ALREADY_CANCELLED = "AlreadyCancelled"
    NOT_FOUND = "NotFound"                          # 资源 / 预订 / 账户不存在
    INVALID_CONFIGURATION = "InvalidConfiguration"  # 奖励配置违反门槛顺序等约束
