"""
core/result.py

统一的操作结果类型 - 所有核心业务操作返回此类型
业务错误作为数据返回，不通过异常穿越服务边界；
只有存储层故障以异常形式传播。
"""
from dataclasses import dataclass, field
from typing import Any, Dict, Generic, Optional, TypeVar

T = TypeVar("T")


@dataclass
class ResultError:
    """结构化的业务错误"""
    kind: str
    message: str
    details: Dict[str, Any] = field(default_factory=dict)


@dataclass
class Result(Generic[T]):
    """
    统一的操作结果

    - success 为 True 时 value 持有返回值
    - success 为 False 时 error 描述失败原因（kind 来自调用方定义的错误枚举）
    """
    success: bool
    value: Optional[T] = None
    error: Optional[ResultError] = None

    @staticmethod
    def ok(value: Any = None) -> "Result":
        """快速创建成功结果"""
        return Result(success=True, value=value)

    @staticmethod
    def fail(kind: Any, message: str, **details) -> "Result":
        """快速创建失败结果"""
        kind_value = getattr(kind, "value", kind)
        return Result(success=False, error=ResultError(kind=kind_value, message=message, details=details))

    @property
    def error_kind(self) -> Optional[str]:
        """失败时的错误类别，成功时为 None"""
        return self.error.kind if self.error else None
