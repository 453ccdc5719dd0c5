"""
Unit tests for RecommendationService
"""
import json

import pytest

from conftest import PLAN_ROWS, InMemoryStore, ScriptedLLM
from subscription_app.models.recommendation import Recommendation
from subscription_app.models.subscription import Plan
from subscription_app.services.recommendation_service import (
    RecommendationService,
    analyze_consolidation,
    parse_candidates,
)
from subscription_app.utils.errors import BackendUnavailableError, ErrorCode, NotFoundError


def make_store(enterprise_price: float = 99.99) -> InMemoryStore:
    rows = [dict(row) for row in PLAN_ROWS]
    for row in rows:
        if row["id"] == "enterprise":
            row["price"] = enterprise_price
    store = InMemoryStore(plans=rows)
    store.add_customer("customer-1")
    return store


@pytest.mark.asyncio
async def test_unknown_customer():
    service = RecommendationService(store=make_store(), llm_service=ScriptedLLM())

    with pytest.raises(NotFoundError) as exc_info:
        await service.analyze("nobody")
    assert exc_info.value.code == ErrorCode.CUSTOMER_NOT_FOUND


@pytest.mark.asyncio
async def test_no_active_subscriptions_returns_starter_without_model_call():
    store = make_store()
    store.add_subscription("customer-1", "pro", status="cancelled")
    llm = ScriptedLLM()
    service = RecommendationService(store=store, llm_service=llm)

    recommendations = await service.analyze("customer-1")

    assert len(recommendations) == 1
    assert recommendations[0].plan_id == "basic"
    assert recommendations[0].potential_savings == 0
    assert llm.calls == []


@pytest.mark.asyncio
async def test_no_consolidation_when_top_tier_is_more_expensive():
    store = make_store(enterprise_price=99.99)
    store.add_subscription("customer-1", "basic")
    store.add_subscription("customer-1", "pro")
    service = RecommendationService(store=store, llm_service=ScriptedLLM("[]"))

    assert await service.analyze("customer-1") == []


@pytest.mark.asyncio
async def test_consolidation_when_top_tier_is_cheaper():
    store = make_store(enterprise_price=29.99)
    store.add_subscription("customer-1", "basic")
    store.add_subscription("customer-1", "pro")
    service = RecommendationService(store=store, llm_service=ScriptedLLM("[]"))

    recommendations = await service.analyze("customer-1")

    assert len(recommendations) == 1
    consolidation = recommendations[0]
    assert consolidation.plan_id == "enterprise"
    assert consolidation.potential_savings == 9.99
    assert "2 active subscriptions" in consolidation.reasoning
    assert consolidation.cost_implication == "Save $9.99/month"


@pytest.mark.asyncio
async def test_model_savings_are_recomputed_from_prices():
    store = make_store()
    subscription_id = store.add_subscription("customer-1", "pro")
    store.add_billing("customer-1", subscription_id, 29.99, days_ago=5)
    content = json.dumps([
        {"planId": "yearly-pro", "planName": "Pro Plan (Yearly)", "reasoning": "Pay yearly",
         "potentialSavings": 500, "benefits": ["20% discount"]},
        {"planId": "enterprise", "planName": "Enterprise Plan", "reasoning": "More seats",
         "potentialSavings": 10, "benefits": []},
    ])
    llm = ScriptedLLM(content)
    service = RecommendationService(store=store, llm_service=llm)

    recommendations = await service.analyze("customer-1")

    yearly, enterprise = recommendations
    # 29.99 - 287.88 / 12 = 6.00
    assert yearly.potential_savings == 6.0
    assert yearly.cost_implication == "Save $6.00/month"
    assert enterprise.potential_savings == -70.0
    assert enterprise.cost_implication == "Additional $70.00/month"
    assert "Current monthly spend: $29.99" in llm.calls[0]["messages"][0]["content"]


@pytest.mark.asyncio
async def test_unknown_model_plans_are_dropped():
    store = make_store()
    store.add_subscription("customer-1", "pro")
    content = '```json\n[{"planId": "platinum", "planName": "Platinum", "reasoning": "x"}]\n```'
    service = RecommendationService(store=store, llm_service=ScriptedLLM(content))

    assert await service.analyze("customer-1") == []


@pytest.mark.asyncio
async def test_backend_unavailable_propagates():
    store = make_store()
    store.add_subscription("customer-1", "pro")
    service = RecommendationService(store=store, llm_service=ScriptedLLM(BackendUnavailableError()))

    with pytest.raises(BackendUnavailableError):
        await service.analyze("customer-1")


@pytest.mark.parametrize("content, expected", [
    ("not json", []),
    ('"just a string"', []),
    ('{"planId": "pro", "reasoning": "single object"}', ["pro"]),
    ('[{"planId": "a"}, {"planId": "b"}, {"planId": "c"}]', ["a", "b"]),
    ('[1, {"planId": "pro", "benefits": "not a list"}, {"planId": "basic"}]', ["basic"]),
])
def test_parse_candidates(content, expected):
    assert [c.plan_id for c in parse_candidates(content)] == expected


def test_consolidation_needs_two_subscriptions():
    plans = [Plan(id="enterprise", name="Enterprise Plan", price=1.0, billing_cycle="monthly")]

    assert analyze_consolidation([], plans) is None


@pytest.mark.parametrize("savings, expected", [
    (12.5, "Save $12.50/month"),
    (-3, "Additional $3.00/month"),
    (0, "Similar cost"),
])
def test_cost_implication(savings, expected):
    recommendation = Recommendation(plan_id="pro", plan_name="Pro Plan", reasoning="", potential_savings=savings)

    assert recommendation.cost_implication == expected
    assert recommendation.model_dump(by_alias=True)["costImplication"] == expected
