"""
服务层模块
"""

from .store import SubscriptionStore
from .supabase_store import SupabaseStore, get_store
from .rate_limiter import InMemoryWindowCounterStore, RateLimiter, WindowCounterStore, get_rate_limiter
from .llm_service import LLMService, get_llm_service
from .intent_service import IntentService, get_intent_service
from .subscription_service import SubscriptionService, get_subscription_service
from .billing_service import BillingService, get_billing_service
from .recommendation_service import RecommendationService, get_recommendation_service
from .chat_service import ChatService, get_chat_service

__all__ = [
    'SubscriptionStore',
    'SupabaseStore', 'get_store',
    'InMemoryWindowCounterStore', 'RateLimiter', 'WindowCounterStore', 'get_rate_limiter',
    'LLMService', 'get_llm_service',
    'IntentService', 'get_intent_service',
    'SubscriptionService', 'get_subscription_service',
    'BillingService', 'get_billing_service',
    'RecommendationService', 'get_recommendation_service',
    'ChatService', 'get_chat_service',
]
