"""
业务错误 → HTTP 响应

服务层返回 Result，路由层只负责按错误类别翻译状态码。
"""
from fastapi import HTTPException, status

from core.result import Result
from app.domain.errors import ErrorKind

ERROR_STATUS = {
    ErrorKind.INVALID_RANGE.value: status.HTTP_400_BAD_REQUEST,
    ErrorKind.RESOURCE_UNAVAILABLE.value: status.HTTP_409_CONFLICT,
    ErrorKind.SLOT_UNAVAILABLE.value: status.HTTP_409_CONFLICT,
    ErrorKind.UNAUTHORIZED.value: status.HTTP_403_FORBIDDEN,
    ErrorKind.INVALID_TRANSITION.value: status.HTTP_409_CONFLICT,
    ErrorKind.ALREADY_CANCELLED.value: status.HTTP_409_CONFLICT,
    ErrorKind.NOT_FOUND.value: status.HTTP_404_NOT_FOUND,
    ErrorKind.INVALID_CONFIGURATION.value: status.HTTP_422_UNPROCESSABLE_ENTITY,
}


def raise_for_error(result: Result) -> None:
    """失败结果转换为 HTTPException"""
    if result.success:
        return
    raise HTTPException(
        status_code=ERROR_STATUS.get(result.error.kind, status.HTTP_400_BAD_REQUEST),
        detail={
            "kind": result.error.kind,
            "message": result.error.message,
            **result.error.details,
        },
    )


def unwrap_or_raise(result: Result):
    raise_for_error(result)
    return result.value
