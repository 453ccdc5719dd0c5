#!/usr/bin/env python3
"""
持久化存储接口

业务服务只依赖这个接口；实现负责把底层异常包装成 StoreError。
查询方法在记录不存在时返回 None，而不是抛出异常。
"""

from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any, Optional

from subscription_app.models.subscription import (
    BillingRecord,
    BillingStatus,
    Customer,
    Plan,
    Subscription,
    SubscriptionStatus,
)


class SubscriptionStore(ABC):

    # -------- Customers --------
    @abstractmethod
    async def get_customer(self, customer_id: str) -> Optional[Customer]: ...

    # -------- Plans --------
    @abstractmethod
    async def list_plans(self) -> list[Plan]:
        """按价格升序返回全部套餐"""

    @abstractmethod
    async def get_plan(self, plan_id: str) -> Optional[Plan]: ...

    # -------- Subscriptions --------
    @abstractmethod
    async def create_subscription(self, data: dict[str, Any]) -> Subscription: ...

    @abstractmethod
    async def get_subscription(self, subscription_id: str) -> Optional[Subscription]: ...

    @abstractmethod
    async def update_subscription(self, subscription_id: str, updates: dict[str, Any]) -> Optional[Subscription]: ...

    @abstractmethod
    async def list_subscriptions(
        self, customer_id: str, status: Optional[SubscriptionStatus] = None
    ) -> list[Subscription]:
        """按创建时间倒序（最新的在前）"""

    async def cancel_subscription(self, subscription_id: str, ended_at: datetime) -> Optional[Subscription]:
        return await self.update_subscription(
            subscription_id,
            {"status": SubscriptionStatus.cancelled.value, "end_date": ended_at.isoformat()},
        )

    # -------- Billing --------
    @abstractmethod
    async def insert_billing_record(self, data: dict[str, Any]) -> BillingRecord: ...

    @abstractmethod
    async def list_billing_records(
        self, customer_id: str, limit: int, status: Optional[BillingStatus] = None
    ) -> list[BillingRecord]:
        """按交易时间倒序（最新的在前）"""
