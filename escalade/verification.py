"""LLM verification pass: turn a free-text verifier reply into a Verdict."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Optional, Sequence
import json
import logging

from escalade.models.base import Message, ModelSpec
from escalade.orchestrator.confidence import clamp
from escalade.orchestrator.prompts import VERIFIER_SYSTEM_PROMPT, verifier_prompt

logger = logging.getLogger(__name__)

UNPARSEABLE_NOTE = "Verifier output could not be parsed"


@dataclass(frozen=True)
class Verdict:
    approved: bool
    confidence: float
    notes: Optional[str] = None


@dataclass(frozen=True)
class VerificationRequest:
    prompt: str
    response: str
    context: Sequence[str] = ()


def build_verifier_messages(request: VerificationRequest) -> list[Message]:
    return [
        Message("system", VERIFIER_SYSTEM_PROMPT),
        Message("user", verifier_prompt(request.prompt, request.response, request.context)),
    ]


def verify_with_llm(provider: Any, model: ModelSpec, request: VerificationRequest) -> Verdict:
    """Run one verification call. Transport failures propagate; bad replies do not."""
    reply = provider.chat(model, build_verifier_messages(request), stream=False)
    verdict = parse_verdict(reply)
    logger.debug(
        "verifier.result model=%s approved=%s confidence=%.2f",
        model.name,
        verdict.approved,
        verdict.confidence,
    )
    return verdict


def parse_verdict(text: str) -> Verdict:
    """Decode the JSON object between the first '{' and the last '}'.

    Anything that cannot be decoded becomes a rejected verdict with zero
    confidence and an explanatory note.
    """
    text = text or ""
    start = text.find("{")
    end = text.rfind("}")
    if start == -1 or end == -1 or end < start:
        return Verdict(approved=False, confidence=0.0, notes=f"{UNPARSEABLE_NOTE}: no JSON object found")
    try:
        parsed = json.loads(text[start:end + 1])
    except json.JSONDecodeError as exc:
        return Verdict(approved=False, confidence=0.0, notes=f"{UNPARSEABLE_NOTE}: {exc.msg}")
    except (ValueError, RecursionError) as exc:
        # oversized integers and runaway nesting
        return Verdict(approved=False, confidence=0.0, notes=f"{UNPARSEABLE_NOTE}: {type(exc).__name__}")
    if not isinstance(parsed, dict):
        return Verdict(approved=False, confidence=0.0, notes=f"{UNPARSEABLE_NOTE}: expected an object")

    notes = parsed.get("notes")
    return Verdict(
        approved=_coerce_approved(parsed.get("approved")),
        confidence=_coerce_confidence(parsed.get("confidence")),
        notes=str(notes) if notes is not None else None,
    )


def _coerce_approved(value: Any) -> bool:
    # "false" from a sloppy model must not read as truthy
    if isinstance(value, str):
        return value.strip().lower() in {"true", "yes", "approved", "1"}
    return bool(value)


def _coerce_confidence(value: Any) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return 0.0
    try:
        number = float(value)
    except OverflowError:
        return 0.0
    if number != number:  # NaN
        return 0.0
    return clamp(number)
