#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Seed demo customers, plans, subscriptions and billing history into Supabase.

Usage:
  SUPABASE_URL=... SUPABASE_SERVICE_ROLE_KEY=... python scripts/seed_data.py
"""
import asyncio
import os
import sys
from datetime import datetime, timedelta, timezone

from loguru import logger

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from subscription_app.config.logging_config import setup_logging
from subscription_app.config.supabase_config import get_supabase_client
from subscription_app.services.billing_service import BillingService
from subscription_app.services.subscription_service import SubscriptionService
from subscription_app.services.supabase_store import SupabaseStore

CUSTOMERS = [
    {"id": "customer-1", "name": "Alice Johnson", "email": "alice@example.com"},
    {"id": "customer-2", "name": "Bob Smith", "email": "bob@example.com"},
    {"id": "customer-3", "name": "Carol Williams", "email": "carol@example.com"},
]

PLANS = [
    {
        "id": "basic",
        "name": "Basic Plan",
        "description": "Perfect for individuals getting started",
        "price": 9.99,
        "billing_cycle": "monthly",
        "features": {"storage": "10GB", "users": 1, "support": "Email",
                     "features": ["Basic analytics", "Mobile app access", "Email support"]},
    },
    {
        "id": "pro",
        "name": "Pro Plan",
        "description": "For professionals who need more power",
        "price": 29.99,
        "billing_cycle": "monthly",
        "features": {"storage": "100GB", "users": 5, "support": "Priority email & chat",
                     "features": ["Advanced analytics", "API access", "Priority support", "Custom integrations"]},
    },
    {
        "id": "enterprise",
        "name": "Enterprise Plan",
        "description": "For large teams with advanced needs",
        "price": 99.99,
        "billing_cycle": "monthly",
        "features": {"storage": "Unlimited", "users": "Unlimited", "support": "24/7 phone & chat",
                     "features": ["Enterprise analytics", "Dedicated account manager", "Custom SLA",
                                  "Advanced security", "SSO integration"]},
    },
    {
        "id": "yearly-pro",
        "name": "Pro Plan (Yearly)",
        "description": "Pro plan with annual billing - save 20%",
        "price": 287.88,
        "billing_cycle": "yearly",
        "features": {"storage": "100GB", "users": 5, "support": "Priority email & chat",
                     "features": ["Advanced analytics", "API access", "Priority support",
                                  "Custom integrations", "20% discount"]},
    },
]

# (customer_id, plan_id, started N days ago)
SUBSCRIPTIONS = [
    ("customer-1", "basic", 30),
    ("customer-2", "pro", 60),
    ("customer-2", "basic", 45),
]

BILLING_MONTHS = 3


async def seed() -> None:
    client = get_supabase_client(use_service_key=True)
    if client is None:
        raise RuntimeError("Supabase is not configured (SUPABASE_URL / SUPABASE_SERVICE_ROLE_KEY)")

    logger.info("Creating customers...")
    client.table("customers").upsert(CUSTOMERS).execute()

    logger.info("Creating plans...")
    client.table("plans").upsert(PLANS).execute()

    store = SupabaseStore(client)
    subscriptions = SubscriptionService(store)
    billing = BillingService(store)
    now = datetime.now(timezone.utc)

    logger.info("Creating subscriptions and billing history...")
    transactions = 0
    for customer_id, plan_id, days_ago in SUBSCRIPTIONS:
        subscription = await subscriptions.create_subscription(
            customer_id, plan_id, start_date=now - timedelta(days=days_ago)
        )
        for month in range(BILLING_MONTHS):
            await billing.record_transaction(
                customer_id,
                subscription.id,
                subscription.plan.price,
                payment_method="Credit Card",
                description=f"Payment for {subscription.plan.name}",
                transaction_date=now - timedelta(days=month * 30 + 5),
            )
            transactions += 1

    logger.info("✅ Database seeded successfully!")
    logger.info(f"- {len(CUSTOMERS)} customers")
    logger.info(f"- {len(PLANS)} plans")
    logger.info(f"- {len(SUBSCRIPTIONS)} active subscriptions")
    logger.info(f"- {transactions} billing transactions")


if __name__ == "__main__":
    setup_logging(level=os.getenv("LOG_LEVEL", "INFO"))
    try:
        asyncio.run(seed())
    except Exception as e:
        logger.error(f"Seeding failed: {e}")
        sys.exit(1)
