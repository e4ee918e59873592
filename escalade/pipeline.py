"""Wire configuration, backend and model slots into recursive sessions."""
from __future__ import annotations

from dataclasses import replace
from typing import Any, Dict, List, Optional, Sequence
import logging

from escalade.audit import AuditLog
from escalade.config import Config, user_config_path
from escalade.models.base import Message, ModelSpec
from escalade.models.ollama import OllamaClient
from escalade.models.registry import ModelRegistry
from escalade.orchestrator.escalate import EscalationPolicy
from escalade.orchestrator.loop import EventHook, LoopResult
from escalade.orchestrator.session import SessionOptions, run_recursive_session
from escalade.rag import EMBED_CACHE_SIZE, Embedder


def prompt_from_messages(messages: Sequence[Message]) -> str:
    return "\n".join(f"{message.role.upper()}: {message.content}" for message in messages)


class EscaladePipeline:
    def __init__(self, config: Config, provider: Any = None) -> None:
        self.config = config
        self.client = OllamaClient.from_config(config.ollama)
        self.provider = provider or self.client
        self.registry = ModelRegistry.from_config(config.models, overrides_path=user_config_path())
        self.embedder: Embedder | None = None
        if config.grounding_enabled:
            # an injected provider that can embed serves grounding too
            embed_backend = self.provider if callable(getattr(self.provider, "embed", None)) else self.client
            self.embedder = Embedder(
                embed_backend,
                self.registry.get("embed"),
                cache_size=int(config.grounding.get("cache_size", EMBED_CACHE_SIZE)),
            )
        self.audit = AuditLog(config.audit_path) if config.audit_path else None
        self.logger = logging.getLogger(__name__)

    def ladder_for(self, initial: ModelSpec) -> List[ModelSpec]:
        """The requested model first, then configured stronger models in order."""
        ladder = [initial]
        for name in self.config.ladder:
            if all(entry.name != name for entry in ladder):
                ladder.append(replace(initial, name=name))
        return ladder

    def session_options(
        self,
        model: Optional[str] = None,
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None,
        on_event: Optional[EventHook] = None,
        use_planner_slot: bool = True,
    ) -> SessionOptions:
        initial = ModelSpec(
            name=model or self.registry.get("recursive"),
            provider=self.registry.provider,
            temperature=temperature,
            max_tokens=max_tokens,
        )
        planning = self.registry.spec("fast", temperature=temperature, max_tokens=max_tokens) if use_planner_slot else None
        reviewer = self.registry.reviewer_spec()
        return SessionOptions(
            provider=self.provider,
            initial_model=initial,
            verifier_model=reviewer,
            escalation_policy=EscalationPolicy(
                max_attempts=self.config.max_attempts,
                ladder=self.ladder_for(initial),
            ),
            planning_model=planning,
            revision_model=reviewer,
            max_retries=self.config.max_retries,
            min_confidence=self.config.min_confidence,
            embedder=self.embedder,
            grounding_threshold=self.config.grounding_threshold,
            run_timeout_seconds=self.config.run_timeout_seconds,
            on_event=self._with_audit(on_event),
            logger=self.logger,
        )

    def answer(
        self,
        prompt: str,
        context: Sequence[str] = (),
        model: Optional[str] = None,
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None,
        on_event: Optional[EventHook] = None,
        use_planner_slot: bool = True,
    ) -> LoopResult:
        options = self.session_options(
            model=model,
            temperature=temperature,
            max_tokens=max_tokens,
            on_event=on_event,
            use_planner_slot=use_planner_slot,
        )
        self.logger.info(
            "session.start model=%s ladder=%s context_items=%d",
            options.initial_model.name,
            [entry.name for entry in options.escalation_policy.ladder],
            len(context),
        )
        result = run_recursive_session(prompt, context, options)
        self.logger.info(
            "session.result model=%s attempts=%d confidence=%.2f",
            result.model,
            result.attempts,
            result.confidence,
        )
        return result

    def _with_audit(self, on_event: Optional[EventHook]) -> Optional[EventHook]:
        if self.audit is None:
            return on_event
        audit_hook = self.audit.session_hook()

        def _hook(event: str, data: Dict[str, Any]) -> None:
            audit_hook(event, data)
            if on_event is not None:
                on_event(event, data)

        return _hook
