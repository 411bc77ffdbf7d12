"""
In-memory stores for sessions and generation responses.
"""

from jira_planner.repositories.cache_repo import CacheEntry, ResponseCache, make_cache_key
from jira_planner.repositories.session_repo import SessionStore, check_snapshot

__all__ = [
    "CacheEntry",
    "ResponseCache",
    "make_cache_key",
    "SessionStore",
    "check_snapshot",
]
