"""
Text-generation service clients.
"""

from jira_planner.llm.generation_client import (
    GenerationService,
    OpenAICompatibleGenerationService,
)

__all__ = ["GenerationService", "OpenAICompatibleGenerationService"]
