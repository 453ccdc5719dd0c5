#!/usr/bin/env python3
"""
标准化错误处理模块

业务层抛出 ServiceError 子类（message 始终可以直接展示给用户，
details 只写日志），路由层再转换成 HTTPException。
"""

from enum import Enum
from typing import Any

from fastapi import HTTPException, status
from pydantic import BaseModel


class ErrorCode(Enum):
    """标准错误代码枚举"""

    # 输入相关错误
    VALIDATION_ERROR = "VALIDATION_ERROR"
    MISSING_FIELDS = "MISSING_FIELDS"
    PLAN_NOT_FOUND = "PLAN_NOT_FOUND"
    SUBSCRIPTION_ALREADY_CANCELLED = "SUBSCRIPTION_ALREADY_CANCELLED"

    # 数据相关错误
    NOT_FOUND = "NOT_FOUND"
    CUSTOMER_NOT_FOUND = "CUSTOMER_NOT_FOUND"
    SUBSCRIPTION_NOT_FOUND = "SUBSCRIPTION_NOT_FOUND"
    DATABASE_ERROR = "DATABASE_ERROR"

    # AI 服务相关错误
    AI_SERVICE_UNAVAILABLE = "AI_SERVICE_UNAVAILABLE"

    # 系统相关错误
    INTERNAL_ERROR = "INTERNAL_ERROR"
    RATE_LIMIT_EXCEEDED = "RATE_LIMIT_EXCEEDED"


class ServiceError(Exception):
    """业务异常基类"""

    default_code = ErrorCode.INTERNAL_ERROR
    default_message = "Something went wrong. Please try again."

    def __init__(
        self,
        message: str | None = None,
        code: ErrorCode | None = None,
        details: dict[str, Any] | None = None,
    ):
        self.message = message or self.default_message
        self.code = code or self.default_code
        self.details = details or {}
        super().__init__(self.message)

    def __repr__(self) -> str:
        return f"{type(self).__name__}(code={self.code.value}, message={self.message!r})"


class ValidationError(ServiceError):
    """输入无效或缺失（例如未知的 planId）"""

    default_code = ErrorCode.VALIDATION_ERROR
    default_message = "That request could not be completed because some details were invalid."


class NotFoundError(ServiceError):
    """客户或订阅不存在"""

    default_code = ErrorCode.NOT_FOUND
    default_message = "We couldn't find what you were looking for."


class BackendUnavailableError(ServiceError):
    """AI 服务重试耗尽"""

    default_code = ErrorCode.AI_SERVICE_UNAVAILABLE
    default_message = "The assistant is temporarily unavailable. Please try again in a moment."


class StoreError(ServiceError):
    """数据库连接或约束错误"""

    default_code = ErrorCode.DATABASE_ERROR
    default_message = "We're having trouble reaching your account data right now. Please try again later."


class StandardErrorResponse(BaseModel):
    """标准错误响应模型"""

    success: bool = False
    error_code: str
    message: str
    details: dict[str, Any] | None = None

    # 限流相关信息
    retry_after: int | None = None

    # 建议操作
    suggested_actions: list[str] | None = None


class RateLimitError:
    """限流相关错误工具类"""

    @staticmethod
    def rate_limited(retry_after: int) -> HTTPException:
        """请求过于频繁"""
        return HTTPException(
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            detail=StandardErrorResponse(
                error_code=ErrorCode.RATE_LIMIT_EXCEEDED.value,
                message=f"Rate limit exceeded. Please try again in {retry_after} seconds.",
                retry_after=retry_after,
                suggested_actions=["Wait for the window to reset", "Reduce request frequency"],
            ).model_dump(),
            headers={"Retry-After": str(retry_after)},
        )


class SystemError:
    """系统错误工具类"""

    @staticmethod
    def missing_fields(fields: list[str]) -> HTTPException:
        """缺少必填字段"""
        return HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=StandardErrorResponse(
                error_code=ErrorCode.MISSING_FIELDS.value,
                message=f"Missing required fields: {', '.join(fields)}",
                details={"fields": fields},
            ).model_dump(),
        )

    @staticmethod
    def invalid_request(fields: list[str]) -> HTTPException:
        """请求体字段格式错误"""
        return HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=StandardErrorResponse(
                error_code=ErrorCode.VALIDATION_ERROR.value,
                message=f"Invalid request fields: {', '.join(fields)}",
                details={"fields": fields},
            ).model_dump(),
        )

    @staticmethod
    def internal_error(error_id: str | None = None) -> HTTPException:
        """内部系统错误"""
        return HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=StandardErrorResponse(
                error_code=ErrorCode.INTERNAL_ERROR.value,
                message="Internal server error",
                details={"error_id": error_id} if error_id else None,
                suggested_actions=["Try again later"],
            ).model_dump(),
        )


_STATUS_BY_ERROR = {
    ValidationError: status.HTTP_400_BAD_REQUEST,
    NotFoundError: status.HTTP_404_NOT_FOUND,
    BackendUnavailableError: status.HTTP_503_SERVICE_UNAVAILABLE,
    StoreError: status.HTTP_503_SERVICE_UNAVAILABLE,
}


def to_http_exception(error: ServiceError) -> HTTPException:
    """把业务异常转换为 HTTPException，仅暴露用户可读信息"""
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    for error_type, code in _STATUS_BY_ERROR.items():
        if isinstance(error, error_type):
            status_code = code
            break

    return HTTPException(
        status_code=status_code,
        detail=StandardErrorResponse(
            error_code=error.code.value,
            message=error.message,
        ).model_dump(),
    )
