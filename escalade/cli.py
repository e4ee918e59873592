"""Command line interface for Escalade."""
from __future__ import annotations

import argparse
import json
import logging
import sys
from typing import Any, Dict, List, Optional

from escalade.config import Config, get_config, user_config_path
from escalade.models.base import TransportError
from escalade.models.ollama import OllamaClient
from escalade.models.registry import ModelRegistry
from escalade.orchestrator.escalate import LadderConfigError
from escalade.orchestrator.loop import SessionTimeoutError
from escalade.pipeline import EscaladePipeline
from escalade.rag import Embedder, EmbeddingStore, StoredEmbedding


def _print(obj: Any) -> None:
    print(json.dumps(obj, indent=2))


def _progress_printer(event: str, data: Dict[str, Any]) -> None:
    details = " ".join(f"{key}={value}" for key, value in data.items())
    print(f"[escalade] {event} {details}".rstrip(), file=sys.stderr)


def _embedder(config: Config, model: Optional[str] = None) -> Embedder:
    registry = ModelRegistry.from_config(config.models)
    return Embedder(OllamaClient.from_config(config.ollama), model or registry.get("embed"))


def _retrieve(config: Config, prompt: str, limit: int) -> List[str]:
    embedder = _embedder(config)
    store = EmbeddingStore(config.grounding_store_path)
    matches = store.query(embedder.embed(prompt), limit=limit, model=embedder.model)
    return [match.text for match in matches]


def cmd_serve(args: argparse.Namespace) -> None:
    import uvicorn
    config = get_config()
    host = args.host or config.host
    port = int(args.port or config.port)
    uvicorn.run("escalade.server:create_app", factory=True, host=host, port=port, reload=False)


def cmd_ask(args: argparse.Namespace) -> None:
    config = get_config()
    pipeline = EscaladePipeline(config)
    context = list(args.context or [])
    try:
        if args.retrieve:
            context.extend(_retrieve(config, args.prompt, args.retrieve))
        result = pipeline.answer(
            args.prompt,
            context=context,
            model=args.model,
            on_event=_progress_printer if args.progress else None,
            use_planner_slot=not args.no_plan_model,
        )
    except (TransportError, LadderConfigError, SessionTimeoutError) as exc:
        print(f"[escalade] {exc}", file=sys.stderr)
        raise SystemExit(2)
    _print(result.to_dict(include_history=args.history))


def cmd_embed(args: argparse.Namespace) -> None:
    config = get_config()
    embedder = _embedder(config, args.model)
    try:
        vector = embedder.embed(args.text)
    except TransportError as exc:
        print(f"[escalade] {exc}", file=sys.stderr)
        raise SystemExit(2)
    _print({"model": embedder.model, "dimensions": len(vector)})


def cmd_index(args: argparse.Namespace) -> None:
    config = get_config()
    store = EmbeddingStore(config.grounding_store_path)
    if args.index_cmd == "add":
        embedder = _embedder(config, args.model)
        store.upsert(StoredEmbedding(
            id=args.id,
            text=args.text,
            vector=embedder.embed(args.text),
            model=embedder.model,
        ))
        _print({"ok": True, "id": args.id, "count": store.count()})
    elif args.index_cmd == "query":
        embedder = _embedder(config, args.model)
        matches = store.query(embedder.embed(args.text), limit=args.limit, model=embedder.model)
        _print({"matches": [{"id": m.id, "text": m.text, "score": round(m.score, 4)} for m in matches]})
    elif args.index_cmd == "count":
        _print({"count": store.count()})
    elif args.index_cmd == "clear":
        store.clear()
        _print({"ok": True, "count": 0})


def cmd_models(args: argparse.Namespace) -> None:
    config = get_config()
    registry = ModelRegistry.from_config(config.models)
    client = OllamaClient.from_config(config.ollama)
    if args.models_cmd == "list":
        _print({"slots": registry.slots, "installed": [m.get("name") for m in client.list_models()]})
    elif args.models_cmd == "check":
        status = {name: client.has_model(name) for name in registry.required_models()}
        missing = [name for name, ok in status.items() if not ok]
        _print({"ok": not missing, "models": status, "missing": missing})
        if missing:
            raise SystemExit(1)


def cmd_mdl(args: argparse.Namespace) -> None:
    config = get_config()
    registry = ModelRegistry.from_config(config.models, overrides_path=user_config_path())
    try:
        registry.set_slot(args.slot, args.model)
    except ValueError as exc:
        print(f"[escalade] {exc}", file=sys.stderr)
        raise SystemExit(2)
    path = registry.save()
    _print({"ok": True, "slots": registry.slots, "path": str(path)})


def cmd_config(args: argparse.Namespace) -> None:
    config = get_config()
    if args.config_cmd == "show":
        _print(config.raw)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="escalade")
    sub = parser.add_subparsers(dest="command")

    serve = sub.add_parser("serve", help="Run the OpenAI-compatible HTTP server")
    serve.add_argument("--host")
    serve.add_argument("--port", type=int)

    ask = sub.add_parser("ask", help="Answer one prompt through the full pipeline")
    ask.add_argument("--prompt", required=True)
    ask.add_argument("--context", action="append")
    ask.add_argument("--model")
    ask.add_argument("--no-plan-model", action="store_true", help="Plan with the answering model")
    ask.add_argument("--retrieve", type=int, default=0, help="Add the top K indexed chunks as context")
    ask.add_argument("--progress", action="store_true")
    ask.add_argument("--history", action="store_true", help="Include per-attempt history")

    embed = sub.add_parser("embed")
    embed.add_argument("--text", required=True)
    embed.add_argument("--model")

    index = sub.add_parser("index")
    index_sub = index.add_subparsers(dest="index_cmd")
    index_add = index_sub.add_parser("add")
    index_add.add_argument("--id", required=True)
    index_add.add_argument("--text", required=True)
    index_add.add_argument("--model")
    index_query = index_sub.add_parser("query")
    index_query.add_argument("--text", required=True)
    index_query.add_argument("--limit", type=int, default=5)
    index_query.add_argument("--model")
    index_sub.add_parser("count")
    index_sub.add_parser("clear")

    models = sub.add_parser("models")
    models_sub = models.add_subparsers(dest="models_cmd")
    models_sub.add_parser("list")
    models_sub.add_parser("check")

    mdl = sub.add_parser("mdl", help="Manage model slot assignments")
    mdl_sub = mdl.add_subparsers(dest="mdl_cmd")
    mdl_set = mdl_sub.add_parser("set")
    mdl_set.add_argument("slot")
    mdl_set.add_argument("model")

    config = sub.add_parser("config")
    config_sub = config.add_subparsers(dest="config_cmd")
    config_sub.add_parser("show")

    return parser


def main(argv: Optional[List[str]] = None) -> None:
    parser = build_parser()
    args = parser.parse_args(argv)
    logging.basicConfig(
        level=getattr(logging, get_config().log_level, logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
    )
    if args.command == "serve":
        cmd_serve(args)
    elif args.command == "ask":
        cmd_ask(args)
    elif args.command == "embed":
        cmd_embed(args)
    elif args.command == "index" and args.index_cmd:
        cmd_index(args)
    elif args.command == "models" and args.models_cmd:
        cmd_models(args)
    elif args.command == "mdl" and args.mdl_cmd:
        cmd_mdl(args)
    elif args.command == "config" and args.config_cmd:
        cmd_config(args)
    else:
        parser.print_help()


if __name__ == "__main__":
    main()
