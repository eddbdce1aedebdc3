"""
业务异常定义

路由层只根据异常类型映射 HTTP 状态码：
- ValidationError / ConflictError -> 400（消息原样返回）
- NotFoundError -> 404
- PermissionDeniedError -> 403
- InternalError -> 500（详细信息只写日志）
"""
import logging
from typing import Optional

from fastapi import HTTPException, status

logger = logging.getLogger(__name__)


class HotelError(Exception):
    """业务异常基类"""

    status_code: int = status.HTTP_400_BAD_REQUEST

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def __str__(self) -> str:
        return self.message


class ValidationError(HotelError):
    """客户端输入不合法（日期、人数、缺失字段）"""


class ConflictError(HotelError):
    """违反业务规则（日期重叠、非法状态转换、容量不足、已付款）"""


class NotFoundError(HotelError):
    """对象不存在"""

    status_code = status.HTTP_404_NOT_FOUND


class PermissionDeniedError(HotelError):
    """无权操作该对象"""

    status_code = status.HTTP_403_FORBIDDEN


class InternalError(HotelError):
    """存储故障或不应出现的状态"""

    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    public_message = "服务器内部错误，请稍后重试"

    def __init__(self, message: str, original_error: Optional[Exception] = None):
        super().__init__(message)
        self.original_error = original_error


def to_http_exception(error: HotelError) -> HTTPException:
    """把业务异常转换为 HTTPException"""
    if isinstance(error, InternalError):
        logger.error(f"Internal error: {error.message}", exc_info=error.original_error or error)
        return HTTPException(status_code=error.status_code, detail=InternalError.public_message)
    return HTTPException(status_code=error.status_code, detail=error.message)
