"""End-to-end pipeline: plan, loop, final verification, optional revision."""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, List, Optional, Sequence
import logging
import time

from escalade.models.base import ModelSpec
from escalade.orchestrator.confidence import combine, is_acceptable
from escalade.orchestrator.escalate import EscalationPolicy
from escalade.orchestrator.loop import (
    EventHook,
    LoopOptions,
    LoopResult,
    check_deadline,
    emit,
    run_orchestrator,
)
from escalade.orchestrator.plan import generate_plan, plan_context_entry
from escalade.orchestrator.revise import RevisionRequest, revise_response
from escalade.rag import GROUNDING_THRESHOLD, Embedder, grounding_score
from escalade.verification import VerificationRequest, verify_with_llm

logger = logging.getLogger(__name__)


@dataclass
class SessionOptions:
    provider: Any
    initial_model: ModelSpec
    verifier_model: ModelSpec
    escalation_policy: EscalationPolicy
    planning_model: Optional[ModelSpec] = None
    revision_model: Optional[ModelSpec] = None
    max_retries: int = 2
    min_confidence: float = 0.75
    embedder: Optional[Embedder] = None
    grounding_threshold: float = GROUNDING_THRESHOLD
    run_timeout_seconds: Optional[float] = None
    on_event: Optional[EventHook] = None
    logger: logging.Logger = field(default=logger)


def run_recursive_session(prompt: str, context: Sequence[str], options: SessionOptions) -> LoopResult:
    """Answer ``prompt`` through every pipeline stage, in order.

    The planner runs once and its output joins the context. The loop's answer
    gets one more verification; if that still fails, the revision model
    rewrites it exactly once and the rewrite is returned without another
    check. ``attempts`` always reports the loop's own count.
    """
    log = options.logger
    deadline = time.monotonic() + options.run_timeout_seconds if options.run_timeout_seconds else None
    planning_model = options.planning_model or options.initial_model
    revision_model = options.revision_model or options.verifier_model

    # 1) plan
    check_deadline(deadline, "planning")
    log.debug("orchestrator.plan.start model=%s", planning_model.name)
    emit(options.on_event, "plan.start", {"model": planning_model.name})
    plan = generate_plan(options.provider, planning_model, prompt)
    enriched: List[str] = list(context)
    enriched.append(plan_context_entry(plan))
    emit(options.on_event, "plan.done", {"model": planning_model.name, "chars": len(plan)})

    # 2) loop over the enriched context
    loop_result = run_orchestrator(
        prompt,
        enriched,
        LoopOptions(
            provider=options.provider,
            initial_model=options.initial_model,
            verifier_model=options.verifier_model,
            escalation_policy=options.escalation_policy,
            max_retries=options.max_retries,
            min_confidence=options.min_confidence,
            on_event=options.on_event,
            deadline=deadline,
            logger=log,
        ),
    )

    # 3) final verification of the chosen answer
    check_deadline(deadline, "verification")
    emit(options.on_event, "verify.start", {"model": options.verifier_model.name})
    verdict = verify_with_llm(
        options.provider,
        options.verifier_model,
        VerificationRequest(prompt=prompt, response=loop_result.content, context=tuple(enriched)),
    )
    approved = verdict.approved
    if options.embedder is not None:
        score = grounding_score(options.embedder, loop_result.content, enriched)
        final_confidence = combine(verifier=verdict.confidence, embedding=score)
        approved = approved and score >= options.grounding_threshold
        log.debug("orchestrator.final_grounding score=%.3f threshold=%.2f", score, options.grounding_threshold)
    else:
        final_confidence = combine(verifier=verdict.confidence)
    log.debug(
        "orchestrator.final_verifier_result approved=%s verifier_confidence=%.2f combined=%.2f",
        verdict.approved,
        verdict.confidence,
        final_confidence,
    )
    emit(options.on_event, "verify.done", {"approved": approved, "confidence": final_confidence})

    if approved and is_acceptable(final_confidence, options.min_confidence):
        return LoopResult(
            content=loop_result.content,
            model=loop_result.model,
            confidence=final_confidence,
            attempts=loop_result.attempts,
            history=loop_result.history,
        )

    # 4) single corrective rewrite
    check_deadline(deadline, "revision")
    log.info("orchestrator.revise.start model=%s", revision_model.name)
    emit(options.on_event, "revise.start", {"model": revision_model.name})
    revision = revise_response(
        options.provider,
        revision_model,
        RevisionRequest(
            original_prompt=prompt,
            previous_response=loop_result.content,
            context=tuple(enriched),
            reviewer_notes=verdict.notes,
        ),
    )
    log.info("orchestrator.revise.result model=%s", revision.model)
    emit(options.on_event, "revise.done", {"model": revision.model})
    return LoopResult(
        content=revision.content,
        model=revision.model,
        confidence=final_confidence,
        attempts=loop_result.attempts,
        history=loop_result.history,
    )
