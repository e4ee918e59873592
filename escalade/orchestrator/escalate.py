"""Forward-only escalation across a ladder of progressively stronger models."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Sequence, Tuple

from escalade.models.base import ModelSpec


class LadderConfigError(ValueError):
    """Raised when a model is not on the ladder or the ladder is malformed."""
    pass


@dataclass
class EscalationState:
    current_model: ModelSpec
    attempts: int = 0


@dataclass(frozen=True)
class EscalationPolicy:
    max_attempts: int
    ladder: Tuple[ModelSpec, ...]

    def __post_init__(self) -> None:
        object.__setattr__(self, "ladder", tuple(self.ladder))
        if self.max_attempts < 0:
            raise LadderConfigError("max_attempts must be >= 0")
        if not self.ladder:
            raise LadderConfigError("escalation ladder must not be empty")
        names = [model.name for model in self.ladder]
        duplicates = sorted({name for name in names if names.count(name) > 1})
        if duplicates:
            raise LadderConfigError(f"duplicate models in escalation ladder: {', '.join(duplicates)}")


def ladder_index(model: ModelSpec, ladder: Sequence[ModelSpec]) -> int:
    for index, entry in enumerate(ladder):
        if entry.name == model.name:
            return index
    raise LadderConfigError(f"Model {model.name} not found in escalation ladder")


def can_escalate(state: EscalationState, policy: EscalationPolicy) -> bool:
    if state.attempts >= policy.max_attempts:
        return False
    return ladder_index(state.current_model, policy.ladder) < len(policy.ladder) - 1


def next_model(state: EscalationState, policy: EscalationPolicy) -> Optional[ModelSpec]:
    if not can_escalate(state, policy):
        return None
    return policy.ladder[ladder_index(state.current_model, policy.ladder) + 1]
