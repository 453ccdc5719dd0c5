"""
数据模型
"""

from .chat import (
    ActionIntent,
    ActionType,
    ChatRequest,
    ChatResponse,
    ConversationTurn,
    ReplyAction,
    ToolInvocation,
    UnrecognizedInvocation,
)
from .common import APIResponse
from .recommendation import Recommendation, RecommendationCandidate
from .subscription import (
    BillingCycle,
    BillingRecord,
    BillingStatus,
    Customer,
    Plan,
    Subscription,
    SubscriptionStatus,
)

__all__ = [
    'ActionIntent',
    'ActionType',
    'ChatRequest',
    'ChatResponse',
    'ConversationTurn',
    'ReplyAction',
    'ToolInvocation',
    'UnrecognizedInvocation',
    'APIResponse',
    'Recommendation',
    'RecommendationCandidate',
    'BillingCycle',
    'BillingRecord',
    'BillingStatus',
    'Customer',
    'Plan',
    'Subscription',
    'SubscriptionStatus',
]
