"""
AI Jira planning assistant: session workflow engine and resilience layer.
"""

__version__ = "1.0.0"
