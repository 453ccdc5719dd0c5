#!/usr/bin/env python3
"""
对话服务：意图识别 → 执行动作 → 生成回复

每种 action 对应一个处理函数，返回 {text, action, data}。
业务异常在这里转换成用户可读的回复，错误码保留在 error_code 中。
"""

from typing import Awaitable, Callable, Optional

from loguru import logger

from subscription_app.models.chat import (
    ActionIntent,
    ActionType,
    ChatRequest,
    ChatResponse,
    ConversationTurn,
    ReplyAction,
)
from subscription_app.models.subscription import Plan, SubscriptionStatus
from subscription_app.services.billing_service import BillingService
from subscription_app.services.intent_service import IntentContext, IntentService, get_intent_service
from subscription_app.services.llm_service import LLMService, get_llm_service
from subscription_app.services.recommendation_service import RecommendationService, get_recommendation_service
from subscription_app.services.store import SubscriptionStore
from subscription_app.services.subscription_service import SubscriptionService
from subscription_app.services.supabase_store import get_store
from subscription_app.utils.errors import ErrorCode, ServiceError, StoreError, ValidationError

BILLING_LINES_IN_TEXT = 5

GENERAL_SYSTEM_PROMPT = """You are a helpful subscription management assistant. Help customers with their subscription questions.
Be concise. If the customer wants to change a subscription, tell them what to ask for (for example "subscribe to pro" or "cancel my subscription").

{context}"""


def _describe_plan(plan: Plan) -> str:
    return f"{plan.name} (${plan.price}/{plan.billing_cycle.value})"


class ChatService:
    """对话服务"""

    def __init__(
        self,
        store: Optional[SubscriptionStore] = None,
        llm_service: Optional[LLMService] = None,
        intent_service: Optional[IntentService] = None,
        recommendation_service: Optional[RecommendationService] = None,
    ):
        self.store = store or get_store()
        self.llm_service = llm_service or get_llm_service()
        self.intent_service = intent_service or get_intent_service()
        self.recommendation_service = recommendation_service or get_recommendation_service()
        self.subscriptions = SubscriptionService(self.store)
        self.billing = BillingService(self.store)

        self._handlers: dict[ActionType, Callable[..., Awaitable[ChatResponse]]] = {
            ActionType.view_subscriptions: self._view_subscriptions,
            ActionType.create_subscription: self._create_subscription,
            ActionType.cancel_subscription: self._cancel_subscription,
            ActionType.view_billing: self._view_billing,
            ActionType.get_recommendations: self._get_recommendations,
            ActionType.general_query: self._general_query,
        }

    async def handle_message(self, request: ChatRequest) -> ChatResponse:
        """处理一条用户消息"""
        logger.info(f"💬 收到客户 {request.customer_id} 的消息 (历史 {len(request.history)} 条)")
        try:
            plans = await self.subscriptions.list_plans()
        except ServiceError as e:
            return self._error_reply(e)

        intent = await self.intent_service.resolve(
            request.message,
            IntentContext(available_plans=plans, history=request.history),
        )
        conversation = [*request.history, ConversationTurn(role="user", content=request.message)]
        return await self.dispatch(intent, request.customer_id, conversation=conversation, plans=plans)

    async def dispatch(
        self,
        intent: ActionIntent,
        customer_id: str,
        conversation: Optional[list[ConversationTurn]] = None,
        plans: Optional[list[Plan]] = None,
    ) -> ChatResponse:
        """执行意图对应的动作"""
        handler = self._handlers.get(intent.action, self._general_query)
        try:
            return await handler(intent, customer_id, conversation or [], plans)
        except ServiceError as e:
            return self._error_reply(e)
        except Exception as e:
            logger.exception(f"❌ 处理 {intent.action.value} 时发生未预期错误: {e}")
            return ChatResponse(
                text="Something went wrong while handling your request. Please try again.",
                action=ReplyAction.error,
                error_code=ErrorCode.INTERNAL_ERROR.value,
            )

    def _error_reply(self, error: ServiceError, data: Optional[dict] = None) -> ChatResponse:
        if isinstance(error, StoreError):
            logger.error(f"❌ 存储层错误 [{error.code.value}]: {error.details}")
        else:
            logger.warning(f"⚠️ 业务错误 [{error.code.value}]: {error.message} {error.details}")
        return ChatResponse(
            text=error.message,
            action=ReplyAction.error,
            data=data or {},
            error_code=error.code.value,
        )

    async def _plans(self, plans: Optional[list[Plan]]) -> list[Plan]:
        return plans if plans is not None else await self.subscriptions.list_plans()

    # ==================== 各动作处理 ====================

    async def _view_subscriptions(self, intent, customer_id, conversation, plans) -> ChatResponse:
        subscriptions = await self.subscriptions.list_subscriptions(customer_id)
        data = {"subscriptions": [self.subscriptions.format_subscription(s) for s in subscriptions]}

        if not subscriptions:
            text = "You don't have any subscriptions yet. Would you like to explore our plans?"
        else:
            lines = []
            for s in subscriptions:
                if s.plan:
                    lines.append(f"- {s.plan.name}: ${s.plan.price}/{s.plan.billing_cycle.value}, Status: {s.status.value}")
                else:
                    lines.append(f"- {s.plan_id}: Status: {s.status.value}")
            text = f"You have {len(subscriptions)} subscription(s):\n" + "\n".join(lines)

        return ChatResponse(text=text, action=ReplyAction.subscriptions_listed, data=data)

    async def _create_subscription(self, intent, customer_id, conversation, plans) -> ChatResponse:
        plan_id = intent.parameters.get("planId")
        if not plan_id:
            plans = await self._plans(plans)
            return ChatResponse(
                text="Which plan would you like to subscribe to? We have: " + ", ".join(_describe_plan(p) for p in plans),
                action=ReplyAction.clarification_needed,
                data={"plans": [p.model_dump(mode="json") for p in plans]},
            )

        try:
            subscription = await self.subscriptions.create_subscription(customer_id, plan_id)
        except ValidationError as e:
            if e.code != ErrorCode.PLAN_NOT_FOUND:
                raise
            plans = await self._plans(plans)
            e.message = f"{e.message} We have: " + ", ".join(_describe_plan(p) for p in plans)
            return self._error_reply(e, data={"plans": [p.model_dump(mode="json") for p in plans]})

        return ChatResponse(
            text=f"Great! I've created your {subscription.plan_name} subscription. Your subscription is now active.",
            action=ReplyAction.subscription_created,
            data={"subscription": self.subscriptions.format_subscription(subscription)},
        )

    async def _cancel_subscription(self, intent, customer_id, conversation, plans) -> ChatResponse:
        subscription_id = intent.parameters.get("subscriptionId")
        if subscription_id:
            cancelled = await self.subscriptions.cancel_subscription(subscription_id, customer_id=customer_id)
            return ChatResponse(
                text=f"Your {cancelled.plan_name} subscription (ID: {cancelled.id}) has been cancelled.",
                action=ReplyAction.subscription_cancelled,
                data={"subscription": self.subscriptions.format_subscription(cancelled)},
            )

        current = [
            s for s in await self.subscriptions.list_subscriptions(customer_id)
            if s.status != SubscriptionStatus.cancelled
        ]
        if not current:
            return ChatResponse(
                text="You don't have any active subscriptions to cancel.",
                action=ReplyAction.clarification_needed,
                data={"subscriptions": []},
            )
        return ChatResponse(
            text="Which subscription would you like to cancel? " + ", ".join(f"{s.plan_name} (ID: {s.id})" for s in current),
            action=ReplyAction.clarification_needed,
            data={"subscriptions": [self.subscriptions.format_subscription(s) for s in current]},
        )

    async def _view_billing(self, intent, customer_id, conversation, plans) -> ChatResponse:
        records = await self.billing.get_billing_history(customer_id, limit=intent.parameters.get("limit"))
        data = {"billing": [self.billing.format_transaction(r) for r in records]}

        if not records:
            text = "You don't have any billing history yet."
        else:
            text = "Here are your recent transactions:\n" + "\n".join(
                f"- {r.transaction_date:%Y-%m-%d}: ${r.amount:.2f} ({r.status.value})"
                for r in records[:BILLING_LINES_IN_TEXT]
            )
        return ChatResponse(text=text, action=ReplyAction.billing_listed, data=data)

    async def _get_recommendations(self, intent, customer_id, conversation, plans) -> ChatResponse:
        recommendations = await self.recommendation_service.analyze(customer_id)
        data = {"recommendations": [r.model_dump(by_alias=True) for r in recommendations]}

        if not recommendations:
            text = "Your current plans already look like a good fit. I don't have any changes to suggest right now."
        else:
            text = "Based on your usage, here are my recommendations:\n" + "\n".join(
                f"- {r.plan_name}: {r.reasoning} ({r.cost_implication})" for r in recommendations
            )
        return ChatResponse(text=text, action=ReplyAction.recommendations, data=data)

    async def _general_query(self, intent, customer_id, conversation, plans) -> ChatResponse:
        plans = await self._plans(plans)
        subscriptions = await self.subscriptions.list_subscriptions(customer_id)

        context_lines = ["Customer's current subscriptions:"]
        context_lines += [f"- {s.plan_name} (ID: {s.id}), status: {s.status.value}" for s in subscriptions] or ["- none"]
        context_lines.append("Available plans:")
        context_lines += [f"- {p.id}: {_describe_plan(p)}" for p in plans] or ["- none"]

        text = await self.llm_service.generate_response(
            conversation,
            system_prompt=GENERAL_SYSTEM_PROMPT.format(context="\n".join(context_lines)),
        )
        return ChatResponse(text=text, action=ReplyAction.general_query)


_chat_service: Optional[ChatService] = None


def get_chat_service() -> ChatService:
    """获取对话服务实例（单例模式）"""
    global _chat_service
    if _chat_service is None:
        _chat_service = ChatService()
    return _chat_service
