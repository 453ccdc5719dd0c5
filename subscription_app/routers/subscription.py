"""
订阅相关路由：套餐、客户订阅、账单历史、推荐
"""

from fastapi import APIRouter, Depends, Query

from subscription_app.models.common import APIResponse
from subscription_app.services.billing_service import BillingService, get_billing_service
from subscription_app.services.recommendation_service import RecommendationService, get_recommendation_service
from subscription_app.services.subscription_service import SubscriptionService, get_subscription_service
from subscription_app.utils.errors import ServiceError, to_http_exception

router = APIRouter()


@router.get("/plans", response_model=APIResponse)
async def list_plans(service: SubscriptionService = Depends(get_subscription_service)):
    try:
        plans = await service.list_plans()
    except ServiceError as e:
        raise to_http_exception(e)
    return APIResponse(success=True, message="获取套餐成功", data={"plans": [p.model_dump(mode="json") for p in plans]})


@router.get("/subscriptions/{customer_id}")
async def get_customer_subscriptions(
    customer_id: str,
    service: SubscriptionService = Depends(get_subscription_service),
):
    try:
        subscriptions = await service.list_subscriptions(customer_id)
    except ServiceError as e:
        raise to_http_exception(e)
    return {"subscriptions": [service.format_subscription(s) for s in subscriptions]}


@router.get("/billing/{customer_id}")
async def get_billing_history(
    customer_id: str,
    limit: int = Query(50, ge=1, le=500, description="返回的交易条数"),
    service: BillingService = Depends(get_billing_service),
):
    try:
        records = await service.get_billing_history(customer_id, limit=limit)
    except ServiceError as e:
        raise to_http_exception(e)
    return {"transactions": [service.format_transaction(r) for r in records]}


@router.get("/recommendations/{customer_id}")
async def get_recommendations(
    customer_id: str,
    service: RecommendationService = Depends(get_recommendation_service),
):
    try:
        recommendations = await service.analyze(customer_id)
    except ServiceError as e:
        raise to_http_exception(e)
    return {"recommendations": [r.model_dump(by_alias=True) for r in recommendations]}
