#!/usr/bin/env python3
"""
意图识别服务

流程（先规则、后模型）：
1. 关键词规则表按固定优先级匹配，命中即返回（不打分、不比较匹配长度）
2. 规则未命中（general_query）且模型可用时，带工具目录调用模型
3. 模型不可用时退回规则结果
"""

import json
import re
from typing import NamedTuple, Optional, Union

from loguru import logger
from pydantic import BaseModel, Field, TypeAdapter
from pydantic import ValidationError as SchemaValidationError

from subscription_app.config import settings
from subscription_app.models.chat import (
    ActionIntent,
    ActionType,
    CancelSubscriptionInvocation,
    ConversationTurn,
    CreateSubscriptionInvocation,
    ToolInvocation,
    UnrecognizedInvocation,
    ViewBillingInvocation,
)
from subscription_app.models.subscription import Plan
from subscription_app.services.llm_service import LLMService, RawInvocation, get_llm_service
from subscription_app.utils.errors import BackendUnavailableError

GENERAL_QUERY_CONFIDENCE = 0.5
MODEL_ACTION_CONFIDENCE = 0.9


class IntentContext(BaseModel):
    available_plans: list[Plan] = Field(default_factory=list)
    history: list[ConversationTurn] = Field(default_factory=list)

    @property
    def plan_ids(self) -> list[str]:
        return [plan.id for plan in self.available_plans]


# ==================== 关键词规则 ====================

class IntentRule(NamedTuple):
    action: ActionType
    pattern: re.Pattern
    confidence: float


def _words(*alternatives: str) -> re.Pattern:
    return re.compile(r"\b(?:" + "|".join(alternatives) + r")\b")


# 顺序即优先级
INTENT_RULES: tuple[IntentRule, ...] = (
    IntentRule(
        ActionType.view_subscriptions,
        re.compile(
            r"\b(?:show|list|view|see|display)\b.*\bsubscriptions?\b"
            r"|\bmy (?:current |active )?subscriptions\b"
            r"|\bwhat subscriptions\b"
            r"|\bsubscriptions do i have\b"
        ),
        0.9,
    ),
    IntentRule(
        ActionType.view_billing,
        _words("billing", "bills?", "invoices?", "payments?", "transactions?", "charges?", "charged", "receipts?"),
        0.9,
    ),
    IntentRule(
        ActionType.get_recommendations,
        _words(r"recommend\w*", r"suggest\w*", "better plan", "cheaper", "save money", "upgrade", "downgrade", r"consolidat\w*"),
        0.85,
    ),
    IntentRule(
        ActionType.create_subscription,
        _words("subscribe", "sign me up", "sign up", "buy", "purchase", "join", "start a subscription"),
        0.8,
    ),
    IntentRule(
        ActionType.cancel_subscription,
        _words(r"cancel\w*", "unsubscribe", "terminate", "stop my", "end my"),
        0.8,
    ),
)

# 套餐名称词表（封闭集合）
PLAN_VOCABULARY: tuple[tuple[str, str], ...] = (
    ("enterprise", "enterprise"),
    ("premium", "premium"),
    ("pro", "pro"),
    ("basic", "basic"),
)
YEARLY_PLAN_IDS = {"pro": "yearly-pro"}
_YEARLY_PATTERN = _words("yearly", "annual", "annually")
_UUID_PATTERN = re.compile(r"\b[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}\b", re.IGNORECASE)


def match_plan_id(text: str) -> Optional[str]:
    lowered = text.lower()
    for token, plan_id in PLAN_VOCABULARY:
        if re.search(rf"\b{token}\b", lowered):
            if _YEARLY_PATTERN.search(lowered):
                return YEARLY_PLAN_IDS.get(plan_id, plan_id)
            return plan_id
    return None


def match_subscription_id(text: str) -> Optional[str]:
    match = _UUID_PATTERN.search(text)
    return match.group(0) if match else None


def classify_message(message: str) -> ActionIntent:
    """关键词分类（不访问网络）"""
    lowered = message.lower()

    for rule in INTENT_RULES:
        if not rule.pattern.search(lowered):
            continue

        parameters = {}
        if rule.action == ActionType.create_subscription:
            plan_id = match_plan_id(lowered)
            if plan_id:
                parameters["planId"] = plan_id
        elif rule.action == ActionType.cancel_subscription:
            subscription_id = match_subscription_id(message)
            if subscription_id:
                parameters["subscriptionId"] = subscription_id

        return ActionIntent(action=rule.action, parameters=parameters, confidence=rule.confidence, source="lexical")

    return ActionIntent(action=ActionType.general_query, confidence=GENERAL_QUERY_CONFIDENCE, source="lexical")


# ==================== 模型工具调用 ====================

def build_tool_catalog(plan_ids: list[str]) -> list[dict]:
    """构造提供给模型的五个工具"""
    plan_id_schema: dict = {"type": "string", "description": "ID of the plan to subscribe to"}
    if plan_ids:
        plan_id_schema["enum"] = list(plan_ids)

    def tool(name: str, description: str, properties: dict, required: list[str]) -> dict:
        return {
            "type": "function",
            "function": {
                "name": name,
                "description": description,
                "parameters": {
                    "type": "object",
                    "properties": properties,
                    "required": required,
                    "additionalProperties": False,
                },
            },
        }

    return [
        tool("view_subscriptions", "Show the customer's current subscriptions", {}, []),
        tool(
            "view_billing",
            "Show the customer's recent billing transactions",
            {"limit": {"type": "integer", "minimum": 1, "maximum": 100, "description": "Number of transactions"}},
            [],
        ),
        tool("get_recommendations", "Suggest better plans or consolidation opportunities", {}, []),
        tool("create_subscription", "Subscribe the customer to a plan", {"planId": plan_id_schema}, ["planId"]),
        tool(
            "cancel_subscription",
            "Cancel one of the customer's subscriptions",
            {"subscriptionId": {"type": "string", "description": "ID of the subscription to cancel"}},
            ["subscriptionId"],
        ),
    ]


_invocation_adapter: TypeAdapter = TypeAdapter(ToolInvocation)


def parse_invocation(
    raw: RawInvocation, plan_ids: Optional[list[str]] = None
) -> Union[ToolInvocation, UnrecognizedInvocation]:
    """在边界处校验模型返回的调用"""

    def unrecognized(reason: str) -> UnrecognizedInvocation:
        return UnrecognizedInvocation(name=raw.name, arguments=raw.arguments, reason=reason)

    try:
        arguments = json.loads(raw.arguments or "{}")
    except json.JSONDecodeError as e:
        return unrecognized(f"invalid JSON arguments: {e.msg}")
    if not isinstance(arguments, dict):
        return unrecognized("arguments must be a JSON object")

    try:
        invocation = _invocation_adapter.validate_python({**arguments, "action": raw.name})
    except SchemaValidationError as e:
        first = e.errors()[0] if e.errors() else {}
        return unrecognized(f"schema validation failed: {first.get('msg', 'invalid')}")

    if isinstance(invocation, CreateSubscriptionInvocation) and plan_ids and invocation.plan_id not in plan_ids:
        return unrecognized(f"unknown planId: {invocation.plan_id}")

    return invocation


def intent_from_invocation(invocation: Union[ToolInvocation, UnrecognizedInvocation]) -> ActionIntent:
    if isinstance(invocation, UnrecognizedInvocation):
        logger.warning(f"模型工具调用无效，按普通问题处理: {invocation.name}: {invocation.reason}")
        return ActionIntent(action=ActionType.general_query, confidence=GENERAL_QUERY_CONFIDENCE, source="model")

    parameters = {}
    if isinstance(invocation, ViewBillingInvocation) and invocation.limit is not None:
        parameters["limit"] = invocation.limit
    elif isinstance(invocation, CreateSubscriptionInvocation):
        parameters["planId"] = invocation.plan_id
    elif isinstance(invocation, CancelSubscriptionInvocation):
        parameters["subscriptionId"] = invocation.subscription_id

    return ActionIntent(
        action=ActionType(invocation.action),
        parameters=parameters,
        confidence=MODEL_ACTION_CONFIDENCE,
        source="model",
    )


INTENT_SYSTEM_PROMPT = """You are the intent router of a subscription management assistant.
If the customer's latest message asks to do one of the available actions, call exactly one tool.
If it is a question, greeting or anything else, reply briefly in plain text without calling a tool.
Never invent subscription ids or plan ids; only use ids mentioned in the conversation or listed below.

Available plans: {plans}"""


class IntentService:
    """意图识别服务"""

    def __init__(self, llm_service: Optional[LLMService] = None, model_enabled: Optional[bool] = None):
        self.llm_service = llm_service or get_llm_service()
        self.model_enabled = settings.INTENT_MODEL_ENABLED if model_enabled is None else model_enabled

    def classify(self, message: str) -> ActionIntent:
        return classify_message(message)

    async def resolve_with_model(self, message: str, context: IntentContext) -> ActionIntent:
        """带工具目录调用模型；重试耗尽时抛出 BackendUnavailableError"""
        plans = ", ".join(f"{p.id} ({p.name})" for p in context.available_plans) or "none"
        messages = [*context.history, ConversationTurn(role="user", content=message)]

        reply = await self.llm_service.complete(
            messages,
            system_prompt=INTENT_SYSTEM_PROMPT.format(plans=plans),
            tools=build_tool_catalog(context.plan_ids),
            temperature=0.0,
        )

        if reply.invocation is None:
            return ActionIntent(action=ActionType.general_query, confidence=GENERAL_QUERY_CONFIDENCE, source="model")

        return intent_from_invocation(parse_invocation(reply.invocation, context.plan_ids))

    async def resolve(self, message: str, context: Optional[IntentContext] = None) -> ActionIntent:
        context = context or IntentContext()
        intent = self.classify(message)
        if intent.action != ActionType.general_query:
            logger.info(f"🔎 关键词识别意图: {intent.action.value} (置信度 {intent.confidence})")
            return intent

        if not (self.model_enabled and self.llm_service.enabled):
            return intent

        try:
            intent = await self.resolve_with_model(message, context)
            logger.info(f"🤖 模型识别意图: {intent.action.value} (置信度 {intent.confidence})")
        except BackendUnavailableError as e:
            logger.warning(f"⚠️ AI服务不可用，使用关键词识别结果: {e.details}")
        return intent


# 全局服务实例
_intent_service: Optional[IntentService] = None


def get_intent_service() -> IntentService:
    """获取意图识别服务实例（单例模式）"""
    global _intent_service
    if _intent_service is None:
        _intent_service = IntentService()
    return _intent_service
