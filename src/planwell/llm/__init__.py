"""Planwell - AI provider access."""

from planwell.llm.client import AIGenerationClient, GenerationContext, parse_plan_content

__all__ = ["AIGenerationClient", "GenerationContext", "parse_plan_content"]
