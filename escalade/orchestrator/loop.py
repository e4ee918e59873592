"""Generate, verify, escalate-or-retry loop."""
from __future__ import annotations

from dataclasses import asdict, dataclass, field
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple
import logging
import time

from escalade.models.base import Message, ModelSpec
from escalade.orchestrator.confidence import combine, is_acceptable, should_escalate
from escalade.orchestrator.escalate import EscalationPolicy, EscalationState, ladder_index, next_model
from escalade.orchestrator.prompts import ANSWER_SYSTEM_PROMPT, answer_prompt
from escalade.verification import VerificationRequest, verify_with_llm

logger = logging.getLogger(__name__)

EventHook = Callable[[str, Dict[str, Any]], None]


class SessionTimeoutError(Exception):
    """Raised when a session runs past its deadline."""
    pass


@dataclass(frozen=True)
class Attempt:
    attempt: int
    model: str
    response: str
    confidence: float
    approved: bool
    notes: Optional[str] = None


@dataclass(frozen=True)
class LoopResult:
    content: str
    model: str
    confidence: float
    attempts: int
    history: Tuple[Attempt, ...] = ()

    def to_dict(self, include_history: bool = False) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "content": self.content,
            "model": self.model,
            "confidence": self.confidence,
            "attempts": self.attempts,
        }
        if include_history:
            payload["history"] = [asdict(item) for item in self.history]
        return payload


@dataclass
class LoopOptions:
    provider: Any
    initial_model: ModelSpec
    verifier_model: ModelSpec
    escalation_policy: EscalationPolicy
    max_retries: int = 2
    min_confidence: float = 0.75
    on_event: Optional[EventHook] = None
    deadline: Optional[float] = None
    logger: logging.Logger = field(default=logger)


def emit(hook: Optional[EventHook], name: str, payload: Dict[str, Any]) -> None:
    if hook is not None:
        hook(name, payload)


def check_deadline(deadline: Optional[float], phase: str) -> None:
    """Raise SessionTimeoutError once time.monotonic() passes the deadline."""
    if deadline is None:
        return
    overrun = time.monotonic() - deadline
    if overrun > 0:
        raise SessionTimeoutError(f"Session exceeded its deadline during {phase} phase (over by {overrun:.1f}s)")


def build_messages(prompt: str, context: Sequence[str]) -> List[Message]:
    return [
        Message("system", ANSWER_SYSTEM_PROMPT),
        Message("user", answer_prompt(prompt, context)),
    ]


def run_orchestrator(prompt: str, context: Sequence[str], options: LoopOptions) -> LoopResult:
    """Drive generate -> verify -> accept | escalate | give up | retry.

    Every iteration bumps ``attempts`` before any backend call, so the loop
    stops after at most ``max_retries`` iterations (escalation only moves
    forward along a finite ladder). Escalation also needs retries left, not
    just ladder room and ``max_attempts``, so a policy allowing more
    escalations than ``max_retries`` is capped by ``max_retries``.
    """
    log = options.logger
    policy = options.escalation_policy
    # fail fast on a misconfigured ladder before spending a backend call
    ladder_index(options.initial_model, policy.ladder)
    max_retries = max(1, int(options.max_retries))
    state = EscalationState(current_model=options.initial_model, attempts=0)
    history: List[Attempt] = []

    log.debug(
        "orchestrator.start prompt_chars=%d context_items=%d initial_model=%s max_retries=%d min_confidence=%.2f",
        len(prompt),
        len(context),
        options.initial_model.name,
        max_retries,
        options.min_confidence,
    )

    last_response = ""
    last_confidence = 0.0
    while True:
        state.attempts += 1
        check_deadline(options.deadline, "loop")
        model = state.current_model
        log.debug("orchestrator.iteration attempt=%d model=%s", state.attempts, model.name)
        emit(options.on_event, "loop.iteration", {"attempt": state.attempts, "model": model.name})

        last_response = options.provider.chat(model, build_messages(prompt, context), stream=False)
        log.debug(
            "orchestrator.model_completion attempt=%d model=%s preview=%r",
            state.attempts,
            model.name,
            last_response[:160],
        )

        verdict = verify_with_llm(
            options.provider,
            options.verifier_model,
            VerificationRequest(prompt=prompt, response=last_response, context=tuple(context)),
        )
        last_confidence = combine(verifier=verdict.confidence)
        history.append(Attempt(
            attempt=state.attempts,
            model=model.name,
            response=last_response,
            confidence=last_confidence,
            approved=verdict.approved,
            notes=verdict.notes,
        ))
        log.debug(
            "orchestrator.verifier_result attempt=%d approved=%s verifier_confidence=%.2f combined=%.2f",
            state.attempts,
            verdict.approved,
            verdict.confidence,
            last_confidence,
        )
        emit(options.on_event, "loop.verdict", {
            "attempt": state.attempts,
            "model": model.name,
            "approved": verdict.approved,
            "confidence": last_confidence,
            "notes": verdict.notes,
        })

        if verdict.approved and is_acceptable(last_confidence, options.min_confidence):
            log.info(
                "orchestrator.accepted model=%s attempts=%d confidence=%.2f",
                model.name,
                state.attempts,
                last_confidence,
            )
            emit(options.on_event, "loop.accepted", {
                "model": model.name,
                "attempts": state.attempts,
                "confidence": last_confidence,
            })
            return LoopResult(
                content=last_response,
                model=model.name,
                confidence=last_confidence,
                attempts=state.attempts,
                history=tuple(history),
            )

        # an escalated attempt still counts against max_retries
        upgrade = None
        if should_escalate(last_confidence) and state.attempts < max_retries:
            upgrade = next_model(state, policy)
        if upgrade is not None:
            log.info(
                "orchestrator.escalate from=%s to=%s attempts=%d confidence=%.2f",
                model.name,
                upgrade.name,
                state.attempts,
                last_confidence,
            )
            emit(options.on_event, "loop.escalate", {
                "from": model.name,
                "to": upgrade.name,
                "attempts": state.attempts,
                "confidence": last_confidence,
            })
            state.current_model = upgrade
            continue

        if state.attempts >= max_retries:
            log.warning(
                "orchestrator.max_retries_reached attempts=%d confidence=%.2f model=%s",
                state.attempts,
                last_confidence,
                model.name,
            )
            break

    emit(options.on_event, "loop.exhausted", {
        "model": state.current_model.name,
        "attempts": state.attempts,
        "confidence": last_confidence,
    })
    return LoopResult(
        content=last_response,
        model=state.current_model.name,
        confidence=last_confidence,
        attempts=state.attempts,
        history=tuple(history),
    )
