"""argparse front end for the bookmind CLI.

Usage::

    python -m bookmind.cli extract doc-123
    python -m bookmind.cli extract doc-123 --file-url https://example.com/book.pdf
    python -m bookmind.cli extract doc-123 --force
    python -m bookmind.cli index doc-123
    python -m bookmind.cli ask doc-123 "What is chapter two about?" --stream
    python -m bookmind.cli job doc-123

Every command builds the same component graph as the web app (see
``bookmind.main.build_components``) but never starts the job queue, so
``extract`` always runs inline.  Logging is lowered to WARNING unless
``--verbose`` is given, keeping stdout for command output.
"""

from __future__ import annotations

import argparse
import asyncio
import json
import sys
from collections.abc import Awaitable, Callable
from typing import Any

from bookmind.utils.errors import BookmindError

Handler = Callable[[argparse.Namespace, dict[str, Any]], Awaitable[int]]


def _print_json(data: dict[str, Any]) -> None:
    print(json.dumps(data, indent=2, ensure_ascii=False, default=str))


# ---------------------------------------------------------------------------
# Command handlers
# ---------------------------------------------------------------------------


async def _handle_extract(args: argparse.Namespace, components: dict[str, Any]) -> int:
    result = await components["ingestion_service"].enqueue_extraction(
        args.document_id,
        file_url=args.file_url,
        direct_file_url=args.direct_url,
        force=args.force,
    )
    _print_json(result.model_dump(mode="json"))
    return 0


async def _handle_index(args: argparse.Namespace, components: dict[str, Any]) -> int:
    chunks = await components["ingestion_service"].reindex(args.document_id)
    _print_json({"document_id": args.document_id, "chunks": chunks})
    return 0


async def _handle_ask(args: argparse.Namespace, components: dict[str, Any]) -> int:
    from bookmind.models.chat import ChatRequest

    request = ChatRequest(
        document_id=args.document_id,
        question=args.question,
        session_id=args.session_id,
        user_id=args.user_id,
    )
    orchestrator = components["chat_orchestrator"]

    if not args.stream:
        result = await orchestrator.respond(request)
        print(result.text)
        print(
            f"\n[{result.provider.value}/{result.model} via {result.method.value}, "
            f"session {result.session_id}]",
            file=sys.stderr,
        )
        return 0

    stream = orchestrator.respond_stream(request)
    async for delta in stream:
        print(delta.content, end="", flush=True)
    print()
    if stream.result is not None:
        result = stream.result
        print(
            f"[{result.provider.value}/{result.model} via {result.method.value}, "
            f"session {result.session_id}]",
            file=sys.stderr,
        )
    return 0


async def _handle_job(args: argparse.Namespace, components: dict[str, Any]) -> int:
    status = await components["job_queue"].get_status(args.job_id)
    if status is None:
        print(f"Job not found: {args.job_id}", file=sys.stderr)
        return 1
    _print_json(status.model_dump(mode="json"))
    return 0


_HANDLERS: dict[str, Handler] = {
    "extract": _handle_extract,
    "index": _handle_index,
    "ask": _handle_ask,
    "job": _handle_job,
}


async def _run(handler: Handler, args: argparse.Namespace) -> int:
    from bookmind.main import build_components, close_components, settings

    components = build_components(settings)
    try:
        await components["document_repository"].initialize()
        await components["chat_repository"].initialize()
        await components["job_store"].initialize()
        return await handler(args, components)
    except BookmindError as exc:
        print(f"Error: {type(exc).__name__}: {exc.message}", file=sys.stderr)
        return 1
    finally:
        await close_components(components)


# ---------------------------------------------------------------------------
# Parser
# ---------------------------------------------------------------------------


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="python -m bookmind.cli",
        description="Extract, index and chat with documents.",
    )
    parser.add_argument("--verbose", action="store_true", help="Log at INFO level")
    subparsers = parser.add_subparsers(dest="command")

    extract_parser = subparsers.add_parser("extract", help="Extract a document's text inline")
    extract_parser.add_argument("document_id")
    extract_parser.add_argument("--file-url", default=None, help="Override the stored file URL")
    extract_parser.add_argument(
        "--direct-url", default=None, help="Override the stored direct download URL"
    )
    extract_parser.add_argument(
        "--force", action="store_true", help="Extract again even if content already exists"
    )

    index_parser = subparsers.add_parser("index", help="Rebuild a document's chunk index")
    index_parser.add_argument("document_id")

    ask_parser = subparsers.add_parser("ask", help="Ask a question about a document")
    ask_parser.add_argument("document_id")
    ask_parser.add_argument("question")
    ask_parser.add_argument("--stream", action="store_true", help="Print tokens as they arrive")
    ask_parser.add_argument("--session-id", default=None, help="Continue an existing session")
    ask_parser.add_argument("--user-id", default=None)

    job_parser = subparsers.add_parser("job", help="Show an extraction job")
    job_parser.add_argument("job_id")

    return parser


def main(argv: list[str] | None = None) -> None:
    parser = _build_parser()
    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        sys.exit(1)

    # bookmind.main configures logging on import; override it afterwards.
    import bookmind.main  # noqa: F401
    from bookmind.utils.logging import configure_logging

    configure_logging(log_level="INFO" if args.verbose else "WARNING")

    exit_code = asyncio.run(_run(_HANDLERS[args.command], args))
    sys.exit(exit_code)


if __name__ == "__main__":
    main()
