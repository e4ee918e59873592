"""Named model slots used to wire the pipeline stages to backend models."""
from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional
import logging

import yaml

from escalade.models.base import ModelSpec

logger = logging.getLogger(__name__)

DEFAULT_SLOTS: Dict[str, str] = {
    "recursive": "qwen2.5:3b",
    "fast": "qwen2.5:1.5b",
    "reviewer": "qwen2.5:0.5b",
    "embed": "nomic-embed-text",
}

SLOT_ALIASES = {
    "recursive": "recursive",
    "main": "recursive",
    "fast": "fast",
    "planner": "fast",
    "reviewer": "reviewer",
    "verifier": "reviewer",
    "embed": "embed",
    "embedding": "embed",
}


@dataclass
class ModelRegistry:
    slots: Dict[str, str]
    provider: str = "ollama"
    overrides_path: Optional[Path] = None
    reviewer_options: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_config(cls, config: Dict[str, Any], overrides_path: Optional[Path] = None) -> "ModelRegistry":
        slots = dict(DEFAULT_SLOTS)
        for key, value in (config.get("slots") or {}).items():
            slot = SLOT_ALIASES.get(str(key).lower())
            if slot and value:
                slots[slot] = str(value)
        return cls(
            slots=slots,
            provider=str(config.get("provider", "ollama")),
            overrides_path=overrides_path,
            reviewer_options=dict(config.get("reviewer") or {}),
        )

    def get(self, slot: str) -> str:
        return self.slots[self._resolve(slot)]

    def spec(
        self,
        slot: str,
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None,
    ) -> ModelSpec:
        return ModelSpec(
            name=self.get(slot),
            provider=self.provider,
            temperature=temperature,
            max_tokens=max_tokens,
        )

    def reviewer_spec(self) -> ModelSpec:
        """Verifier and reviser model: deterministic and short by default."""
        temperature = self.reviewer_options.get("temperature", 0.0)
        max_tokens = self.reviewer_options.get("max_tokens", 256)
        return self.spec(
            "reviewer",
            temperature=float(temperature) if temperature is not None else None,
            max_tokens=int(max_tokens) if max_tokens is not None else None,
        )

    def set_slot(self, slot: str, model: str) -> None:
        model = model.strip()
        if not model:
            raise ValueError("model name must not be empty")
        self.slots[self._resolve(slot)] = model

    def required_models(self) -> List[str]:
        seen: List[str] = []
        for name in self.slots.values():
            if name not in seen:
                seen.append(name)
        return seen

    def save(self) -> Path:
        """Persist slot assignments into the user config file, keeping its other keys."""
        if self.overrides_path is None:
            raise ValueError("registry has no overrides path to save to")
        path = self.overrides_path
        existing: Dict[str, Any] = {}
        if path.exists():
            try:
                existing = yaml.safe_load(path.read_text()) or {}
            except yaml.YAMLError:
                logger.warning("Failed to parse %s, rewriting it", path, exc_info=True)
                existing = {}
        existing.setdefault("models", {})["slots"] = dict(self.slots)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(yaml.safe_dump(existing, sort_keys=False))
        return path

    def _resolve(self, slot: str) -> str:
        resolved = SLOT_ALIASES.get(slot.strip().lower())
        if not resolved:
            raise ValueError(f"unknown model slot: {slot} (expected one of: {', '.join(DEFAULT_SLOTS)})")
        return resolved
