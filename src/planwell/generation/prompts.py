"""
Planwell - Generation prompts.

Builds the chat messages for a plan request. The model is always told to
answer with a single JSON object; the client rejects anything else.
"""

import json
from typing import Any

from planwell.models import PlanCategory

SYSTEM_PROMPTS: dict[PlanCategory, str] = {
    PlanCategory.MEAL: (
        "You are an expert nutritionist who creates personalized weekly meal plans. "
        "Give specific portions for every food and the calories and macronutrients "
        "(protein, carbs, fats, fiber) of each meal and day."
    ),
    PlanCategory.WORKOUT: (
        "You are an expert personal trainer who creates personalized weekly workout plans. "
        "Give sets, reps and rest for every exercise, and a warm-up and cool-down per session."
    ),
    PlanCategory.REHAB: (
        "You are an expert physiotherapist who creates personalized rehabilitation plans. "
        "The plan must be progressive over four weeks, starting with gentle exercises, "
        "and include pain management recommendations."
    ),
}

JSON_INSTRUCTION = "Respond with a single valid JSON object and nothing else."


def build_messages(category: PlanCategory, preferences: dict[str, Any]) -> list[dict[str, str]]:
    """System + user messages for one plan request."""
    user_prompt = (
        f"Create a {category.value} plan for a user with these preferences:\n"
        f"{json.dumps(preferences, indent=2, ensure_ascii=False, default=str)}"
    )
    return [
        {"role": "system", "content": f"{SYSTEM_PROMPTS[category]}\n\n{JSON_INSTRUCTION}"},
        {"role": "user", "content": user_prompt},
    ]
