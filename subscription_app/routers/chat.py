"""
对话路由
"""

import uuid
from typing import Any

from fastapi import APIRouter, Body, Depends
from loguru import logger
from pydantic import ValidationError as SchemaValidationError

from subscription_app.models.chat import ChatRequest
from subscription_app.services.chat_service import ChatService, get_chat_service
from subscription_app.utils.errors import SystemError

router = APIRouter()

REQUIRED_FIELDS = ("customerId", "message")


@router.post("/chat")
async def chat(
    payload: dict[str, Any] = Body(...),
    service: ChatService = Depends(get_chat_service),
):
    """
    处理一条对话消息

    请求体: {customerId, message, history[]}（兼容 conversationHistory）
    返回: {text, action, data, errorCode}
    """
    missing = [field for field in REQUIRED_FIELDS if not str(payload.get(field) or "").strip()]
    if missing:
        raise SystemError.missing_fields(missing)

    try:
        request = ChatRequest.model_validate(payload)
    except SchemaValidationError as e:
        logger.warning(f"对话请求格式错误: {e.errors()}")
        raise SystemError.invalid_request([".".join(str(p) for p in err["loc"]) for err in e.errors()])

    try:
        reply = await service.handle_message(request)
    except Exception as e:
        error_id = uuid.uuid4().hex[:8]
        logger.exception(f"❌ 对话处理失败 [{error_id}]: {e}")
        raise SystemError.internal_error(error_id)
    return reply.model_dump(by_alias=True)
