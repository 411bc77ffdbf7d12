"""
API v1 routers.
"""

from jira_planner.api.v1 import errors, health, sessions

__all__ = ["errors", "health", "sessions"]
