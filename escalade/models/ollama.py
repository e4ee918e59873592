"""Minimal Ollama client for local inference and embeddings."""
from __future__ import annotations

from contextlib import nullcontext
from typing import Any, Dict, List, Optional, Sequence
import logging
import threading
import time

import httpx

from escalade.models.base import Message, ModelSpec, StreamingUnsupportedError, TransportError

logger = logging.getLogger(__name__)


class OllamaClient:
    """Blocking transport to an Ollama server.

    ``timeout`` of None means requests wait for the backend indefinitely.
    ``max_concurrency`` caps outstanding requests across every caller sharing
    this client.
    """

    name = "ollama"

    def __init__(
        self,
        base_url: str = "http://localhost:11434",
        timeout: Optional[float] = None,
        max_concurrency: Optional[int] = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._slots = threading.BoundedSemaphore(max_concurrency) if max_concurrency else None

    @classmethod
    def from_config(cls, config: Dict[str, Any]) -> "OllamaClient":
        timeout = config.get("request_timeout_seconds")
        max_concurrency = config.get("max_concurrent_requests")
        return cls(
            base_url=str(config.get("base_url", "http://localhost:11434")),
            timeout=float(timeout) if timeout is not None else None,
            max_concurrency=int(max_concurrency) if max_concurrency else None,
        )

    def list_models(self) -> list[dict]:
        try:
            with httpx.Client(timeout=5.0) as client:
                resp = client.get(f"{self.base_url}/api/tags")
                resp.raise_for_status()
                data = resp.json()
                return data.get("models", [])
        except Exception:
            logger.debug("ollama.tags.failed", exc_info=True)
            return []

    def has_model(self, name: str) -> bool:
        try:
            with httpx.Client(timeout=5.0) as client:
                resp = client.post(f"{self.base_url}/api/show", json={"name": name})
                return resp.status_code == 200
        except httpx.HTTPError:
            logger.warning("ollama.show.failed model=%s", name, exc_info=True)
            return False

    def chat(self, model: ModelSpec, messages: Sequence[Message], stream: bool = False) -> str:
        if stream:
            logger.error("ollama.chat.streaming_not_implemented model=%s", model.name)
            raise StreamingUnsupportedError("Streaming not implemented for the Ollama transport")

        options: Dict[str, Any] = {}
        if model.temperature is not None:
            options["temperature"] = model.temperature
        if model.max_tokens is not None:
            options["num_predict"] = model.max_tokens
        payload: Dict[str, Any] = {
            "model": model.name,
            "messages": [message.to_dict() for message in messages],
            "stream": False,
        }
        if options:
            payload["options"] = options

        logger.debug(
            "ollama.chat.request model=%s messages=%d temperature=%s max_tokens=%s",
            model.name,
            len(messages),
            model.temperature,
            model.max_tokens,
        )
        data, duration = self._post("/api/chat", payload, model.name)
        content = (data.get("message") or {}).get("content") if isinstance(data, dict) else None
        if not content:
            logger.error("ollama.chat.invalid_response model=%s latency_ms=%.0f", model.name, duration)
            raise TransportError("Invalid response from Ollama")
        logger.info("ollama.chat.success model=%s latency_ms=%.0f", model.name, duration)
        return content

    def embed(self, text: str, model: str) -> List[float]:
        data, duration = self._post("/api/embeddings", {"model": model, "prompt": text}, model)
        vector = data.get("embedding") if isinstance(data, dict) else None
        if not isinstance(vector, list) or not vector:
            raise TransportError("Invalid embedding response from Ollama")
        logger.debug("ollama.embed.success model=%s dims=%d latency_ms=%.0f", model, len(vector), duration)
        return [float(value) for value in vector]

    def _post(self, path: str, payload: Dict[str, Any], model_name: str) -> tuple[Any, float]:
        start = time.perf_counter()
        with self._slots or nullcontext():
            try:
                with httpx.Client(timeout=self.timeout) as client:
                    resp = client.post(f"{self.base_url}{path}", json=payload)
            except httpx.HTTPError as exc:
                duration = (time.perf_counter() - start) * 1000
                logger.error("ollama.request_failed path=%s model=%s latency_ms=%.0f error=%s", path, model_name, duration, exc)
                raise TransportError(f"Ollama request failed: {exc}") from exc
        duration = (time.perf_counter() - start) * 1000
        if resp.status_code >= 400:
            logger.error("ollama.http_error path=%s status=%s model=%s latency_ms=%.0f", path, resp.status_code, model_name, duration)
            raise TransportError(f"Ollama request failed ({resp.status_code})")
        try:
            return resp.json(), duration
        except ValueError as exc:
            raise TransportError("Ollama returned a non-JSON body") from exc
