#!/usr/bin/env python3
"""
大模型服务（OpenAI 兼容 chat/completions 接口）

- 支持可选的工具目录（tools），返回纯文本或一次工具调用
- 每次调用有独立超时，重试由注入的 RetryPolicy 负责
- 重试耗尽时抛出 BackendUnavailableError，调用方可以改走关键词规则
"""

import asyncio
import json
from typing import Any, NamedTuple, Optional

import aiohttp
from loguru import logger

from subscription_app.config import settings
from subscription_app.models.chat import ConversationTurn
from subscription_app.utils.errors import BackendUnavailableError
from subscription_app.utils.retry import RetryExhaustedError, RetryPolicy


class LLMRequestError(Exception):
    """单次请求失败（可重试）"""


class RawInvocation(NamedTuple):
    name: str
    arguments: str  # JSON 字符串，未经校验


class LLMReply(NamedTuple):
    text: str
    invocation: Optional[RawInvocation] = None
    invocation_count: int = 0


def parse_completion(result: Any) -> LLMReply:
    """解析 chat/completions 响应；多个工具调用时只取第一个"""
    if not isinstance(result, dict):
        raise LLMRequestError("AI响应格式错误：响应体不是对象")
    choices = result.get("choices")
    if not choices or not isinstance(choices, list):
        raise LLMRequestError("AI响应格式错误：缺少choices字段")

    choice = choices[0]
    message = choice.get("message") if isinstance(choice, dict) else None
    if not isinstance(message, dict):
        raise LLMRequestError("AI响应格式错误：缺少message字段")
    content = message.get("content") or ""
    if not isinstance(content, str):
        raise LLMRequestError("AI响应格式错误：content不是字符串")
    tool_calls = message.get("tool_calls") or []
    if not isinstance(tool_calls, list):
        raise LLMRequestError("AI响应格式错误：tool_calls不是列表")

    if tool_calls:
        if len(tool_calls) > 1:
            logger.warning(f"模型返回了 {len(tool_calls)} 个工具调用，仅处理第一个")
        call = tool_calls[0]
        function = call.get("function") if isinstance(call, dict) else None
        if not isinstance(function, dict):
            raise LLMRequestError("AI响应格式错误：工具调用缺少function字段")
        arguments = function.get("arguments")
        if arguments is None:
            arguments = "{}"
        elif not isinstance(arguments, str):
            arguments = json.dumps(arguments, ensure_ascii=False)
        return LLMReply(
            text=content,
            invocation=RawInvocation(name=str(function.get("name") or ""), arguments=arguments),
            invocation_count=len(tool_calls),
        )

    return LLMReply(text=content)


class LLMService:
    """大模型调用服务"""

    def __init__(
        self,
        api_key: Optional[str] = None,
        api_url: Optional[str] = None,
        model: Optional[str] = None,
        timeout: Optional[float] = None,
        retry_policy: Optional[RetryPolicy] = None,
    ):
        self.api_key = api_key if api_key is not None else settings.AI_API_KEY
        self.api_url = (api_url or settings.AI_API_URL).rstrip("/")
        self.model = model or settings.AI_MODEL
        self.timeout = timeout or settings.AI_TIMEOUT_SECONDS
        self.retry_policy = retry_policy or RetryPolicy(
            max_attempts=settings.AI_MAX_RETRIES,
            base_delay=settings.AI_RETRY_BASE_DELAY,
            retry_on=(LLMRequestError, aiohttp.ClientError, asyncio.TimeoutError),
        )

        if not self.api_key:
            logger.warning("⚠️ AI_API_KEY 未配置，AI 功能不可用")

    @property
    def enabled(self) -> bool:
        return bool(self.api_key)

    @staticmethod
    def _build_messages(messages: list, system_prompt: Optional[str]) -> list[dict[str, str]]:
        payload_messages = []
        if system_prompt:
            payload_messages.append({"role": "system", "content": system_prompt})
        for message in messages:
            if isinstance(message, ConversationTurn):
                payload_messages.append({"role": message.role, "content": message.content})
            else:
                payload_messages.append({"role": message["role"], "content": message["content"]})
        return payload_messages

    async def complete(
        self,
        messages: list,
        system_prompt: Optional[str] = None,
        tools: Optional[list[dict[str, Any]]] = None,
        temperature: float = 0.7,
        max_tokens: int = 1000,
    ) -> LLMReply:
        """调用模型，返回文本或工具调用"""
        if not self.enabled:
            raise BackendUnavailableError(details={"reason": "AI_API_KEY not configured"})

        payload: dict[str, Any] = {
            "model": self.model,
            "messages": self._build_messages(messages, system_prompt),
            "temperature": temperature,
            "max_tokens": max_tokens,
        }
        if tools:
            payload["tools"] = tools
            payload["tool_choice"] = "auto"

        try:
            return await self.retry_policy.run(lambda: self._post(payload), label="AI API调用")
        except RetryExhaustedError as e:
            raise BackendUnavailableError(
                details={"attempts": e.attempts, "last_error": str(e.last_error)}
            ) from e

    async def generate_response(self, messages: list, system_prompt: Optional[str] = None) -> str:
        """只需要文本回复时使用"""
        reply = await self.complete(messages, system_prompt=system_prompt)
        return reply.text

    async def _post(self, payload: dict[str, Any]) -> LLMReply:
        headers = {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }
        logger.debug(f"🚀 发送AI请求 - 模型: {self.model}, 消息数: {len(payload['messages'])}, 工具: {'有' if payload.get('tools') else '无'}")

        async with aiohttp.ClientSession() as session:
            async with session.post(
                f"{self.api_url}/chat/completions",
                headers=headers,
                json=payload,
                timeout=aiohttp.ClientTimeout(total=self.timeout),
            ) as response:
                if response.status != 200:
                    error_content = await response.text()
                    logger.error(f"AI API错误响应内容: {error_content[:500]}")
                    raise LLMRequestError(f"AI API调用失败: {response.status}")
                try:
                    result = await response.json()
                except ValueError as e:
                    raise LLMRequestError(f"AI响应不是合法JSON: {e}") from e

        try:
            return parse_completion(result)
        except (AttributeError, TypeError, KeyError, IndexError) as e:
            raise LLMRequestError(f"AI响应格式错误: {e}") from e


# 全局服务实例
_llm_service: Optional[LLMService] = None


def get_llm_service() -> LLMService:
    """获取大模型服务实例（单例模式）"""
    global _llm_service
    if _llm_service is None:
        _llm_service = LLMService()
    return _llm_service
