# backend/core/deps.py

"""
Common dependencies for the application
"""

from typing import Optional
from fastapi import Header, Request

from .cache import ReviewCache
from .database import get_db
from .metrics_registry import MetricsRegistry

# Re-export database dependency
get_db = get_db


def get_metrics_registry(request: Request) -> MetricsRegistry:
    """Process-wide metrics store created at startup"""
    return request.app.state.metrics_registry


def get_review_cache(request: Request) -> ReviewCache:
    return request.app.state.review_cache


def get_actor_id(
    x_actor_id: Optional[str] = Header(None, alias="X-Actor-Id"),
) -> Optional[str]:
    """Identifier of the manager making a change, when the caller sends one"""
    if x_actor_id is None:
        return None
    return x_actor_id.strip() or None
