#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
订阅服务

职责：
- 获取可用套餐、校验套餐是否存在
- 创建 / 更新 / 取消订阅（先校验再写入，单步完成）
- 查询客户订阅并补全套餐信息
"""
from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional

from loguru import logger

from subscription_app.models.subscription import BillingCycle, Plan, Subscription, SubscriptionStatus
from subscription_app.services.store import SubscriptionStore
from subscription_app.services.supabase_store import get_store
from subscription_app.utils.errors import ErrorCode, NotFoundError, ValidationError

BILLING_PERIOD_DAYS = {BillingCycle.monthly: 30, BillingCycle.yearly: 365}
UPDATABLE_FIELDS = {"plan_id", "status", "end_date", "next_billing_date"}


class SubscriptionService:
    def __init__(self, store: Optional[SubscriptionStore] = None):
        self.store = store or get_store()

    # -------- Plans --------
    async def list_plans(self) -> List[Plan]:
        return await self.store.list_plans()

    async def validate_plan(self, plan_id: str) -> Plan:
        plan = await self.store.get_plan(plan_id) if plan_id else None
        if not plan:
            logger.warning(f"套餐不存在: {plan_id}")
            raise ValidationError(
                f"Plan '{plan_id}' does not exist. Please choose one of the available plans.",
                code=ErrorCode.PLAN_NOT_FOUND,
                details={"plan_id": plan_id},
            )
        return plan

    # -------- Subscriptions --------
    async def create_subscription(
        self, customer_id: str, plan_id: str, start_date: Optional[datetime] = None
    ) -> Subscription:
        plan = await self.validate_plan(plan_id)

        start = start_date or datetime.now(timezone.utc)
        next_billing = start + timedelta(days=BILLING_PERIOD_DAYS[plan.billing_cycle])
        data = {
            "customer_id": customer_id,
            "plan_id": plan.id,
            "status": SubscriptionStatus.active.value,
            "start_date": start.isoformat(),
            "next_billing_date": next_billing.isoformat(),
        }
        subscription = await self.store.create_subscription(data)
        subscription.plan = plan
        logger.info(f"✅ 客户 {customer_id} 订阅套餐 {plan.id} 成功: {subscription.id}")
        return subscription

    async def get_subscription(self, subscription_id: str, customer_id: Optional[str] = None) -> Subscription:
        subscription = await self.store.get_subscription(subscription_id)
        # 不属于当前客户的订阅按不存在处理
        if not subscription or (customer_id and subscription.customer_id != customer_id):
            raise NotFoundError(
                f"I couldn't find a subscription with ID {subscription_id}.",
                code=ErrorCode.SUBSCRIPTION_NOT_FOUND,
                details={"subscription_id": subscription_id, "customer_id": customer_id},
            )
        return subscription

    async def update_subscription(self, subscription_id: str, updates: Dict[str, Any]) -> Subscription:
        await self.get_subscription(subscription_id)

        data = {key: value for key, value in updates.items() if key in UPDATABLE_FIELDS}
        if not data:
            raise ValidationError("No valid fields to update.", details={"fields": list(updates)})
        if "plan_id" in data:
            await self.validate_plan(data["plan_id"])

        updated = await self.store.update_subscription(subscription_id, data)
        if not updated:
            raise NotFoundError(code=ErrorCode.SUBSCRIPTION_NOT_FOUND, details={"subscription_id": subscription_id})
        return updated

    async def cancel_subscription(self, subscription_id: str, customer_id: Optional[str] = None) -> Subscription:
        subscription = await self.get_subscription(subscription_id, customer_id)
        if subscription.status == SubscriptionStatus.cancelled:
            raise ValidationError(
                "That subscription is already cancelled.",
                code=ErrorCode.SUBSCRIPTION_ALREADY_CANCELLED,
                details={"subscription_id": subscription_id},
            )

        cancelled = await self.store.cancel_subscription(subscription_id, datetime.now(timezone.utc))
        if not cancelled:
            raise NotFoundError(code=ErrorCode.SUBSCRIPTION_NOT_FOUND, details={"subscription_id": subscription_id})
        await self._attach_plans([cancelled])
        logger.info(f"🛑 订阅已取消: {subscription_id}")
        return cancelled

    async def list_subscriptions(
        self, customer_id: str, status: Optional[SubscriptionStatus] = None
    ) -> List[Subscription]:
        subscriptions = await self.store.list_subscriptions(customer_id, status=status)
        await self._attach_plans(subscriptions)
        return subscriptions

    @staticmethod
    def format_subscription(subscription: Subscription) -> Dict[str, Any]:
        plan = subscription.plan
        return {
            "id": subscription.id,
            "planId": subscription.plan_id,
            "planName": subscription.plan_name,
            "status": subscription.status.value,
            "startDate": subscription.start_date.isoformat(),
            "endDate": subscription.end_date.isoformat() if subscription.end_date else None,
            "nextBillingDate": subscription.next_billing_date.isoformat() if subscription.next_billing_date else None,
            "amount": plan.price if plan else None,
            "billingCycle": plan.billing_cycle.value if plan else None,
        }

    async def _attach_plans(self, subscriptions: List[Subscription]) -> None:
        missing = [s for s in subscriptions if s.plan is None]
        if not missing:
            return
        plans = {plan.id: plan for plan in await self.store.list_plans()}
        for subscription in missing:
            subscription.plan = plans.get(subscription.plan_id)


_subscription_service: Optional[SubscriptionService] = None


async def get_subscription_service() -> SubscriptionService:
    global _subscription_service
    if _subscription_service is None:
        _subscription_service = SubscriptionService()
    return _subscription_service
