"""Value types shared by the transport and the orchestration core."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Optional

ROLES = ("system", "user", "assistant")


class TransportError(Exception):
    """Raised when the model backend is unreachable or returns a bad reply."""
    pass


class StreamingUnsupportedError(TransportError):
    """Raised when a caller asks the backend transport for a streamed reply."""
    pass


@dataclass(frozen=True)
class ModelSpec:
    name: str
    provider: str = "ollama"
    temperature: Optional[float] = None
    max_tokens: Optional[int] = None


@dataclass(frozen=True)
class Message:
    role: str
    content: str

    def __post_init__(self) -> None:
        if self.role not in ROLES:
            raise ValueError(f"unknown message role: {self.role}")

    def to_dict(self) -> Dict[str, str]:
        return {"role": self.role, "content": self.content}
