"""Planning pass: decompose the request before anything answers it."""
from __future__ import annotations

from typing import Any, List
import logging

from escalade.models.base import Message, ModelSpec
from escalade.orchestrator.prompts import PLAN_PROMPT

logger = logging.getLogger(__name__)

PLAN_PREFIX = "PLAN:\n"


def build_plan_messages(user_prompt: str) -> List[Message]:
    return [
        Message("system", PLAN_PROMPT),
        Message("user", user_prompt),
    ]


def generate_plan(provider: Any, model: ModelSpec, user_prompt: str) -> str:
    """Return the planner's raw text; callers treat it as opaque."""
    plan = provider.chat(model, build_plan_messages(user_prompt), stream=False)
    logger.debug("orchestrator.plan.result model=%s preview=%r", model.name, plan[:200])
    return plan


def plan_context_entry(plan: str) -> str:
    return f"{PLAN_PREFIX}{plan}"
