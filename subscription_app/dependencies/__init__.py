"""
FastAPI 依赖
"""

from .rate_limit import enforce_rate_limit, get_client_identity

__all__ = ["enforce_rate_limit", "get_client_identity"]
