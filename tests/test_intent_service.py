"""
Unit tests for intent resolution
"""
import pytest

from conftest import ScriptedLLM, tool_call
from subscription_app.models.chat import (
    ActionType,
    CreateSubscriptionInvocation,
    UnrecognizedInvocation,
    ViewBillingInvocation,
)
from subscription_app.models.subscription import Plan
from subscription_app.services.intent_service import (
    IntentContext,
    IntentService,
    build_tool_catalog,
    classify_message,
    intent_from_invocation,
    parse_invocation,
)
from subscription_app.services.llm_service import RawInvocation
from subscription_app.utils.errors import BackendUnavailableError

PLAN_IDS = ["basic", "pro", "enterprise", "yearly-pro"]


@pytest.fixture
def context():
    plans = [
        Plan(id="basic", name="Basic Plan", price=9.99, billing_cycle="monthly"),
        Plan(id="pro", name="Pro Plan", price=29.99, billing_cycle="monthly"),
    ]
    return IntentContext(available_plans=plans)


# ==================== 关键词规则 ====================

@pytest.mark.parametrize("message", [
    "show me my subscriptions",
    "Can you list my subscription?",
    "what subscriptions do I have",
    "my current subscriptions",
])
def test_view_subscriptions_phrases(message):
    intent = classify_message(message)

    assert intent.action == ActionType.view_subscriptions
    assert intent.confidence >= 0.7
    assert intent.source == "lexical"


@pytest.mark.parametrize("message", ["show my billing history", "any recent payments?", "I need an invoice"])
def test_view_billing_phrases(message):
    assert classify_message(message).action == ActionType.view_billing


def test_recommendation_phrase():
    intent = classify_message("Can you recommend a cheaper plan?")

    assert intent.action == ActionType.get_recommendations
    assert intent.confidence >= 0.7


def test_create_subscription_fills_plan_id():
    intent = classify_message("I want to subscribe to the Pro plan")

    assert intent.action == ActionType.create_subscription
    assert intent.parameters == {"planId": "pro"}


def test_create_subscription_yearly_qualifier():
    intent = classify_message("sign me up for pro, billed annually")

    assert intent.parameters == {"planId": "yearly-pro"}


def test_create_subscription_without_known_plan():
    intent = classify_message("I'd like to buy something")

    assert intent.action == ActionType.create_subscription
    assert intent.parameters == {}


def test_cancel_with_subscription_id():
    subscription_id = "3f2b8c1e-9a4d-4e6f-8b2a-1c3d5e7f9a0b"
    intent = classify_message(f"please cancel subscription {subscription_id}")

    assert intent.action == ActionType.cancel_subscription
    assert intent.parameters == {"subscriptionId": subscription_id}


def test_cancel_without_id():
    intent = classify_message("I want to unsubscribe")

    assert intent.action == ActionType.cancel_subscription
    assert intent.parameters == {}


def test_rule_order_decides_overlaps():
    # 同时包含查看订阅和取消两类关键词时，按规则顺序取第一个
    assert classify_message("show my subscriptions so I can cancel one").action == ActionType.view_subscriptions
    assert classify_message("cancel the payment").action == ActionType.view_billing
    assert classify_message("show me how to cancel my subscription").action == ActionType.view_subscriptions
    assert classify_message("cancel my subscription").action == ActionType.cancel_subscription


def test_unmatched_message_is_general_query():
    intent = classify_message("Hello, how are you?")

    assert intent.action == ActionType.general_query
    assert intent.confidence == 0.5


# ==================== 工具调用校验 ====================

def test_tool_catalog_has_five_tools_with_plan_enum():
    catalog = build_tool_catalog(PLAN_IDS)
    names = [tool["function"]["name"] for tool in catalog]

    assert names == [
        "view_subscriptions",
        "view_billing",
        "get_recommendations",
        "create_subscription",
        "cancel_subscription",
    ]
    create = catalog[3]["function"]["parameters"]
    assert create["properties"]["planId"]["enum"] == PLAN_IDS
    assert create["required"] == ["planId"]


def test_parse_valid_invocations():
    billing = parse_invocation(RawInvocation("view_billing", '{"limit": 5}'), PLAN_IDS)
    create = parse_invocation(RawInvocation("create_subscription", '{"planId": "pro"}'), PLAN_IDS)

    assert isinstance(billing, ViewBillingInvocation) and billing.limit == 5
    assert isinstance(create, CreateSubscriptionInvocation) and create.plan_id == "pro"


@pytest.mark.parametrize("raw", [
    RawInvocation("view_billing", '{"limit": '),
    RawInvocation("view_billing", '[1, 2]'),
    RawInvocation("view_billing", '{"limit": 0}'),
    RawInvocation("create_subscription", '{}'),
    RawInvocation("create_subscription", '{"planId": "platinum"}'),
    RawInvocation("delete_account", '{}'),
    RawInvocation("view_subscriptions", '{"unexpected": true}'),
])
def test_invalid_invocations_degrade_to_general_query(raw):
    invocation = parse_invocation(raw, PLAN_IDS)
    intent = intent_from_invocation(invocation)

    assert isinstance(invocation, UnrecognizedInvocation)
    assert intent.action == ActionType.general_query
    assert intent.confidence == 0.5


def test_valid_invocation_becomes_intent():
    intent = intent_from_invocation(
        parse_invocation(RawInvocation("cancel_subscription", '{"subscriptionId": "sub-1"}'), PLAN_IDS)
    )

    assert intent.action == ActionType.cancel_subscription
    assert intent.parameters == {"subscriptionId": "sub-1"}
    assert intent.source == "model"
    assert intent.confidence >= 0.7


# ==================== 组合流程 ====================

@pytest.mark.asyncio
async def test_lexical_match_skips_model(context):
    llm = ScriptedLLM()
    service = IntentService(llm_service=llm, model_enabled=True)

    intent = await service.resolve("show me my subscriptions", context)

    assert intent.action == ActionType.view_subscriptions
    assert llm.calls == []


@pytest.mark.asyncio
async def test_unmatched_message_escalates_to_model(context):
    llm = ScriptedLLM(tool_call("create_subscription", '{"planId": "basic"}'))
    service = IntentService(llm_service=llm, model_enabled=True)

    intent = await service.resolve("I'd like the cheapest option please", context)

    assert intent.action == ActionType.create_subscription
    assert intent.parameters == {"planId": "basic"}
    call = llm.calls[0]
    assert call["temperature"] == 0.0
    assert len(call["tools"]) == 5
    assert call["tools"][3]["function"]["parameters"]["properties"]["planId"]["enum"] == ["basic", "pro"]


@pytest.mark.asyncio
async def test_model_text_reply_is_general_query(context):
    service = IntentService(llm_service=ScriptedLLM("Hi! How can I help?"), model_enabled=True)

    intent = await service.resolve("hello", context)

    assert intent.action == ActionType.general_query
    assert intent.confidence == 0.5


@pytest.mark.asyncio
async def test_backend_unavailable_keeps_lexical_intent(context):
    service = IntentService(llm_service=ScriptedLLM(BackendUnavailableError()), model_enabled=True)

    intent = await service.resolve("hello", context)

    assert intent.action == ActionType.general_query
    assert intent.source == "lexical"


@pytest.mark.asyncio
async def test_model_disabled_never_calls_backend(context):
    llm = ScriptedLLM()
    service = IntentService(llm_service=llm, model_enabled=False)

    intent = await service.resolve("hello", context)

    assert intent.action == ActionType.general_query
    assert llm.calls == []
