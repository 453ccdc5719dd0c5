"""
对话请求/响应、意图与模型工具调用的 Pydantic 模型
"""

from __future__ import annotations

from enum import Enum
from typing import Annotated, Any, Literal, Union

from pydantic import AliasChoices, BaseModel, ConfigDict, Field


class ActionType(str, Enum):
    view_subscriptions = "view_subscriptions"
    view_billing = "view_billing"
    get_recommendations = "get_recommendations"
    create_subscription = "create_subscription"
    cancel_subscription = "cancel_subscription"
    general_query = "general_query"


class ReplyAction(str, Enum):
    """回复中 action 字段的取值"""

    subscriptions_listed = "view_subscriptions"
    billing_listed = "view_billing"
    recommendations = "get_recommendations"
    subscription_created = "subscription_created"
    subscription_cancelled = "subscription_cancelled"
    clarification_needed = "clarification_needed"
    general_query = "general_query"
    error = "error"


class ConversationTurn(BaseModel):
    role: Literal["user", "assistant"]
    content: str


class ActionIntent(BaseModel):
    action: ActionType
    parameters: dict[str, Any] = Field(default_factory=dict)
    confidence: float = Field(ge=0.0, le=1.0)
    source: Literal["lexical", "model"] = "lexical"


class ChatRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    customer_id: str = Field(alias="customerId")
    message: str
    history: list[ConversationTurn] = Field(
        default_factory=list,
        validation_alias=AliasChoices("history", "conversationHistory"),
    )


class ChatResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True, use_enum_values=True)

    text: str
    action: ReplyAction
    data: dict[str, Any] = Field(default_factory=dict)
    error_code: str | None = Field(default=None, serialization_alias="errorCode")


# -------- 模型工具调用（按 action 区分的联合类型） --------

class ViewSubscriptionsInvocation(BaseModel):
    model_config = ConfigDict(extra="forbid")

    action: Literal["view_subscriptions"]


class ViewBillingInvocation(BaseModel):
    model_config = ConfigDict(extra="forbid")

    action: Literal["view_billing"]
    limit: int | None = Field(default=None, ge=1, le=100)


class GetRecommendationsInvocation(BaseModel):
    model_config = ConfigDict(extra="forbid")

    action: Literal["get_recommendations"]


class CreateSubscriptionInvocation(BaseModel):
    model_config = ConfigDict(extra="forbid", populate_by_name=True)

    action: Literal["create_subscription"]
    plan_id: str = Field(alias="planId", min_length=1)


class CancelSubscriptionInvocation(BaseModel):
    model_config = ConfigDict(extra="forbid", populate_by_name=True)

    action: Literal["cancel_subscription"]
    subscription_id: str = Field(alias="subscriptionId", min_length=1)


ToolInvocation = Annotated[
    Union[
        ViewSubscriptionsInvocation,
        ViewBillingInvocation,
        GetRecommendationsInvocation,
        CreateSubscriptionInvocation,
        CancelSubscriptionInvocation,
    ],
    Field(discriminator="action"),
]


class UnrecognizedInvocation(BaseModel):
    """无法通过校验的调用（未知工具名、JSON 损坏、参数不合法）"""

    name: str
    arguments: str
    reason: str
