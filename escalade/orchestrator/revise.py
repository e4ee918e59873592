"""One-shot corrective rewrite of a rejected answer."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, List, Optional, Sequence

from escalade.models.base import Message, ModelSpec
from escalade.orchestrator.prompts import REVISION_SYSTEM_PROMPT, revision_prompt


@dataclass(frozen=True)
class RevisionRequest:
    original_prompt: str
    previous_response: str
    context: Sequence[str] = ()
    reviewer_notes: Optional[str] = None


@dataclass(frozen=True)
class RevisionResult:
    content: str
    model: str


def build_revision_messages(request: RevisionRequest) -> List[Message]:
    return [
        Message("system", REVISION_SYSTEM_PROMPT),
        Message("user", revision_prompt(
            request.original_prompt,
            request.previous_response,
            request.context,
            request.reviewer_notes,
        )),
    ]


def revise_response(provider: Any, model: ModelSpec, request: RevisionRequest) -> RevisionResult:
    # The revision is returned unverified; accepting it is the caller's call.
    content = provider.chat(model, build_revision_messages(request), stream=False)
    return RevisionResult(content=content, model=model.name)
