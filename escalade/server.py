"""FastAPI server exposing an OpenAI-compatible surface over the pipeline."""
from __future__ import annotations

from typing import Any, Dict, Iterator, List, Optional
import json
import logging
import queue
import threading
import time
import uuid

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse, StreamingResponse

from escalade.config import Config, get_config
from escalade.models.base import ROLES, Message, TransportError
from escalade.orchestrator.escalate import LadderConfigError
from escalade.orchestrator.loop import LoopResult, SessionTimeoutError
from escalade.pipeline import EscaladePipeline, prompt_from_messages
from escalade.rag import normalize_vector

logger = logging.getLogger(__name__)

SSE_HEADERS = {"Cache-Control": "no-cache", "Connection": "keep-alive"}

STATUS_MESSAGES = {
    "plan.start": ("planning", "Generating plan..."),
    "loop.iteration": ("generation", "Generating answer..."),
    "loop.escalate": ("escalation", "Escalating to a stronger model..."),
    "verify.start": ("verification", "Verifying answer..."),
    "revise.start": ("revision", "Revising answer..."),
}


class InvalidRequest(ValueError):
    pass


def format_sse(data: Any) -> str:
    return f"data: {json.dumps(data)}\n\n"


def _error(message: str, kind: str, status_code: int) -> JSONResponse:
    return JSONResponse({"error": {"message": message, "type": kind}}, status_code=status_code)


def _error_for(exc: Exception) -> tuple[str, str, int]:
    if isinstance(exc, SessionTimeoutError):
        return str(exc), "timeout", 504
    if isinstance(exc, TransportError):
        return str(exc), "backend_error", 502
    if isinstance(exc, LadderConfigError):
        return str(exc), "configuration_error", 500
    return "Internal server error", "internal_error", 500


def _content_text(content: Any) -> str:
    if isinstance(content, str):
        return content
    if isinstance(content, list):
        parts = [part.get("text", "") for part in content if isinstance(part, dict) and part.get("type") == "text"]
        return "\n".join(parts)
    raise InvalidRequest("message content must be a string or a list of text parts")


def parse_messages(payload: Dict[str, Any]) -> List[Message]:
    raw = payload.get("messages")
    if not isinstance(raw, list) or not raw:
        raise InvalidRequest("Invalid request: messages are required")
    messages: List[Message] = []
    for item in raw:
        if not isinstance(item, dict) or item.get("role") not in ROLES:
            raise InvalidRequest(f"Invalid request: each message needs a role in {', '.join(ROLES)}")
        messages.append(Message(item["role"], _content_text(item.get("content", ""))))
    return messages


def _optional_number(payload: Dict[str, Any], key: str, cast) -> Any:
    value = payload.get(key)
    if value is None:
        return None
    try:
        return cast(value)
    except (TypeError, ValueError):
        raise InvalidRequest(f"Invalid request: {key} must be a number")


def completion_payload(completion_id: str, created: int, model: str, result: LoopResult) -> Dict[str, Any]:
    return {
        "id": completion_id,
        "object": "chat.completion",
        "created": created,
        "model": model,
        "choices": [
            {
                "index": 0,
                "message": {"role": "assistant", "content": result.content},
                "finish_reason": "stop",
            }
        ],
        "escalade": {
            "model": result.model,
            "confidence": result.confidence,
            "attempts": result.attempts,
        },
    }


def completion_chunks(completion_id: str, created: int, model: str, content: str) -> List[str]:
    """Two-chunk framing: the role first, then the whole content."""
    base = {"id": completion_id, "object": "chat.completion.chunk", "created": created, "model": model}
    role_chunk = {**base, "choices": [{"index": 0, "delta": {"role": "assistant"}, "finish_reason": None}]}
    content_chunk = {**base, "choices": [{"index": 0, "delta": {"content": content}, "finish_reason": "stop"}]}
    return [format_sse(role_chunk), format_sse(content_chunk), "data: [DONE]\n\n"]


def status_event(name: str, data: Dict[str, Any]) -> Optional[Dict[str, Any]]:
    entry = STATUS_MESSAGES.get(name)
    if not entry:
        return None
    phase, message = entry
    event: Dict[str, Any] = {"type": "status", "message": message, "phase": phase}
    if data.get("model") or data.get("to"):
        event["model"] = data.get("to") or data.get("model")
    if data.get("attempt"):
        event["attempt"] = data["attempt"]
    return event


def _stream_with_status(
    pipeline: EscaladePipeline,
    prompt: str,
    session_kwargs: Dict[str, Any],
    completion_id: str,
    created: int,
    model: str,
) -> Iterator[str]:
    events: "queue.Queue[Optional[str]]" = queue.Queue()
    outcome: Dict[str, Any] = {}

    def _on_event(name: str, data: Dict[str, Any]) -> None:
        event = status_event(name, data)
        if event:
            events.put(format_sse(event))

    def _task() -> None:
        try:
            outcome["result"] = pipeline.answer(prompt, on_event=_on_event, **session_kwargs)
        except Exception as exc:
            logger.error("chat.completion.failed error=%s", exc, exc_info=True)
            outcome["error"] = exc
        finally:
            events.put(None)

    threading.Thread(target=_task, daemon=True).start()
    while True:
        item = events.get()
        if item is None:
            break
        yield item
    if "error" in outcome:
        message, kind, _ = _error_for(outcome["error"])
        yield format_sse({"error": {"message": message, "type": kind}})
        yield "data: [DONE]\n\n"
        return
    yield from completion_chunks(completion_id, created, model, outcome["result"].content)


def create_app(config: Config | None = None, pipeline: EscaladePipeline | None = None) -> FastAPI:
    config = config or (pipeline.config if pipeline else get_config())
    app = FastAPI(title="Escalade")
    app.state.config = config
    app.state.pipeline = pipeline or EscaladePipeline(config)

    @app.get("/health")
    async def health():
        """Health check endpoint for monitoring."""
        return {"status": "ok", "service": "escalade"}

    @app.get("/v1/models")
    async def list_models(request: Request):
        registry = request.app.state.pipeline.registry
        names = [registry.get("recursive")]
        for name in request.app.state.config.ladder:
            if name not in names:
                names.append(name)
        return {
            "object": "list",
            "data": [{"id": name, "object": "model", "created": 0, "owned_by": "local"} for name in names],
        }

    @app.post("/v1/chat/completions")
    def chat_completions(payload: dict, request: Request):
        pipeline = request.app.state.pipeline
        try:
            messages = parse_messages(payload)
            session_kwargs = {
                "model": (payload.get("model") or "").strip() or None,
                "temperature": _optional_number(payload, "temperature", float),
                "max_tokens": _optional_number(payload, "max_tokens", int),
            }
        except InvalidRequest as exc:
            return _error(str(exc), "invalid_request_error", 400)

        prompt = prompt_from_messages(messages)
        model = session_kwargs["model"] or pipeline.registry.get("recursive")
        completion_id = f"chatcmpl-{uuid.uuid4()}"
        created = int(time.time())
        stream = bool(payload.get("stream", False))
        logger.info(
            "chat.completion.handle.start model=%s messages=%d stream=%s",
            model,
            len(messages),
            stream,
        )

        if stream and request.app.state.config.stream_status:
            return StreamingResponse(
                _stream_with_status(pipeline, prompt, session_kwargs, completion_id, created, model),
                media_type="text/event-stream",
                headers=SSE_HEADERS,
            )

        start = time.perf_counter()
        try:
            result = pipeline.answer(prompt, **session_kwargs)
        except (TransportError, LadderConfigError, SessionTimeoutError) as exc:
            logger.error("chat.completion.failed error=%s", exc)
            message, kind, status = _error_for(exc)
            return _error(message, kind, status)
        except Exception as exc:
            logger.error("chat.completion.failed error=%s", exc, exc_info=True)
            return _error(*_error_for(exc))
        logger.info(
            "chat.completion.success latency_ms=%.0f model=%s attempts=%d confidence=%.2f",
            (time.perf_counter() - start) * 1000,
            result.model,
            result.attempts,
            result.confidence,
        )
        if stream:
            return StreamingResponse(
                iter(completion_chunks(completion_id, created, model, result.content)),
                media_type="text/event-stream",
                headers=SSE_HEADERS,
            )
        return completion_payload(completion_id, created, model, result)

    @app.post("/v1/embeddings")
    def embeddings(payload: dict, request: Request):
        pipeline = request.app.state.pipeline
        raw = payload.get("input")
        if isinstance(raw, str):
            inputs = [raw]
        elif isinstance(raw, list) and all(isinstance(item, str) for item in raw):
            inputs = list(raw)
        else:
            inputs = []
        if not inputs:
            return _error("Invalid request: input is required", "invalid_request_error", 400)
        model = payload.get("model") or pipeline.registry.get("embed")
        try:
            vectors = [normalize_vector(pipeline.client.embed(text, model)) for text in inputs]
        except TransportError as exc:
            message, kind, status = _error_for(exc)
            return _error(message, kind, status)
        return {
            "object": "list",
            "data": [
                {"object": "embedding", "embedding": vector, "index": index}
                for index, vector in enumerate(vectors)
            ],
            "model": model,
        }

    return app


def main():
    import uvicorn
    config = get_config()
    uvicorn.run("escalade.server:create_app", factory=True, host=config.host, port=config.port, reload=False)


if __name__ == "__main__":
    main()
