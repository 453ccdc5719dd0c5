#!/usr/bin/env python3
"""
套餐推荐服务

模型只负责给出推荐理由和卖点；节省金额一律按套餐价格重新计算：
- 月付套餐按原价，年付套餐按 price / 12 折算
- savings = 当前每月总花费 - 推荐套餐每月花费（保留两位小数）
"""

import json
import re
from typing import Iterable, Optional

from loguru import logger
from pydantic import ValidationError as SchemaValidationError

from subscription_app.models.recommendation import Recommendation, RecommendationCandidate
from subscription_app.models.subscription import BillingRecord, BillingStatus, Plan, Subscription, SubscriptionStatus
from subscription_app.services.billing_service import BillingService
from subscription_app.services.llm_service import LLMService, get_llm_service
from subscription_app.services.store import SubscriptionStore
from subscription_app.services.subscription_service import SubscriptionService
from subscription_app.services.supabase_store import get_store
from subscription_app.utils.errors import ErrorCode, NotFoundError

MAX_MODEL_RECOMMENDATIONS = 2
BILLING_LOOKBACK = 10
TOP_TIER_KEYWORDS = ("enterprise", "premium")

STARTER_RECOMMENDATION = Recommendation(
    plan_id="basic",
    plan_name="Basic Plan",
    reasoning="Start with our Basic plan to get access to essential features",
    potential_savings=0,
    benefits=["Essential features", "Affordable pricing", "Easy to upgrade"],
)

RECOMMENDATION_SYSTEM_PROMPT = """You are a subscription optimization expert. Analyze the customer's current subscriptions and billing history to provide personalized recommendations.
Respond with ONLY a JSON array of recommendations, each containing:
- planId: recommended plan ID (must be one of the available plans)
- planName: plan name
- reasoning: explanation of why this plan is recommended
- benefits: array of key benefits"""

_CODE_FENCE = re.compile(r"^```(?:json)?\s*|\s*```$", re.IGNORECASE)


def current_monthly_total(subscriptions: Iterable[Subscription]) -> float:
    return sum(s.plan.monthly_price for s in subscriptions if s.plan is not None)


def calculate_savings(subscriptions: list[Subscription], plan: Plan) -> float:
    """正数表示节省，负数表示额外花费"""
    return round(current_monthly_total(subscriptions) - plan.monthly_price, 2)


def find_top_tier_plan(plans: list[Plan]) -> Optional[Plan]:
    for plan in plans:
        name = plan.name.lower()
        if any(keyword in name for keyword in TOP_TIER_KEYWORDS):
            return plan
    return None


def analyze_consolidation(subscriptions: list[Subscription], plans: list[Plan]) -> Optional[Recommendation]:
    """多个订阅时，判断合并到高阶套餐是否更便宜"""
    if len(subscriptions) < 2:
        return None

    best_plan = find_top_tier_plan(plans)
    if best_plan is None:
        return None

    savings = calculate_savings(subscriptions, best_plan)
    if savings <= 0:
        return None

    return Recommendation(
        plan_id=best_plan.id,
        plan_name=best_plan.name,
        reasoning=(
            f"You have {len(subscriptions)} active subscriptions. Consolidating to {best_plan.name} "
            f"could simplify billing and provide all features in one plan, saving ${savings:.2f} per month."
        ),
        potential_savings=savings,
        benefits=[
            "Single billing cycle",
            "All features included",
            "Simplified management",
            f"Save ${savings:.2f} per month",
        ],
    )


def parse_candidates(content: str) -> list[RecommendationCandidate]:
    """解析模型输出；格式不对时返回空列表"""
    try:
        payload = json.loads(_CODE_FENCE.sub("", (content or "").strip()))
    except json.JSONDecodeError as e:
        logger.warning(f"推荐结果不是有效JSON，忽略: {e}")
        return []

    if isinstance(payload, dict):
        payload = [payload]
    if not isinstance(payload, list):
        logger.warning(f"推荐结果格式错误（{type(payload).__name__}），忽略")
        return []

    candidates = []
    for item in payload:
        if not isinstance(item, dict):
            continue
        try:
            candidates.append(RecommendationCandidate.model_validate(item))
        except SchemaValidationError as e:
            logger.warning(f"忽略无效推荐项: {e.errors()[0].get('msg') if e.errors() else e}")
    return candidates[:MAX_MODEL_RECOMMENDATIONS]


def build_summary(subscriptions: list[Subscription], billing: list[BillingRecord], plans: list[Plan]) -> str:
    lines = [f"Customer has {len(subscriptions)} active subscription(s):"]
    for s in subscriptions:
        if s.plan:
            lines.append(f"- {s.plan.name} (${s.plan.price}/{s.plan.billing_cycle.value}), status: {s.status.value}")
        else:
            lines.append(f"- {s.plan_id}, status: {s.status.value}")

    lines.append(f"Current monthly spend: ${current_monthly_total(subscriptions):.2f}")
    recent_total = sum(record.amount for record in billing)
    lines.append(f"Recent successful payments ({len(billing)} transactions): ${recent_total:.2f}")
    lines.append("Available plans: " + ", ".join(
        f"{p.id} - {p.name} (${p.price}/{p.billing_cycle.value})" for p in plans
    ))
    lines.append("")
    lines.append("Provide 1-2 recommendations for better plans or consolidation opportunities.")
    return "\n".join(lines)


class RecommendationService:
    """推荐分析服务"""

    def __init__(self, store: Optional[SubscriptionStore] = None, llm_service: Optional[LLMService] = None):
        self.store = store or get_store()
        self.llm_service = llm_service or get_llm_service()
        self.subscriptions = SubscriptionService(self.store)
        self.billing = BillingService(self.store)

    async def analyze(self, customer_id: str) -> list[Recommendation]:
        customer = await self.store.get_customer(customer_id)
        if not customer:
            raise NotFoundError(
                f"I couldn't find a customer with ID {customer_id}.",
                code=ErrorCode.CUSTOMER_NOT_FOUND,
                details={"customer_id": customer_id},
            )

        subscriptions = await self.subscriptions.list_subscriptions(customer_id, status=SubscriptionStatus.active)
        if not subscriptions:
            logger.info(f"客户 {customer_id} 没有活跃订阅，返回入门套餐推荐")
            return [STARTER_RECOMMENDATION.model_copy(deep=True)]

        billing = await self.billing.get_billing_history(
            customer_id, limit=BILLING_LOOKBACK, status=BillingStatus.success
        )
        plans = await self.subscriptions.list_plans()

        recommendations = await self._model_recommendations(subscriptions, billing, plans)

        consolidation = analyze_consolidation(subscriptions, plans)
        if consolidation:
            recommendations.append(consolidation)

        logger.info(f"💡 为客户 {customer_id} 生成 {len(recommendations)} 条推荐")
        return recommendations

    async def _model_recommendations(
        self, subscriptions: list[Subscription], billing: list[BillingRecord], plans: list[Plan]
    ) -> list[Recommendation]:
        content = await self.llm_service.generate_response(
            [{"role": "user", "content": build_summary(subscriptions, billing, plans)}],
            system_prompt=RECOMMENDATION_SYSTEM_PROMPT,
        )

        plans_by_id = {plan.id: plan for plan in plans}
        plans_by_name = {plan.name.lower(): plan for plan in plans}

        recommendations = []
        for candidate in parse_candidates(content):
            plan = plans_by_id.get(candidate.plan_id or "") or plans_by_name.get((candidate.plan_name or "").lower())
            if plan is None:
                logger.warning(f"模型推荐了不存在的套餐，忽略: {candidate.plan_id or candidate.plan_name}")
                continue
            recommendations.append(Recommendation(
                plan_id=plan.id,
                plan_name=plan.name,
                reasoning=candidate.reasoning,
                potential_savings=calculate_savings(subscriptions, plan),
                benefits=candidate.benefits,
            ))
        return recommendations


_recommendation_service: Optional[RecommendationService] = None


def get_recommendation_service() -> RecommendationService:
    """获取推荐服务实例（单例模式）"""
    global _recommendation_service
    if _recommendation_service is None:
        _recommendation_service = RecommendationService()
    return _recommendation_service
