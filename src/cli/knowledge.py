# =============================================================================
# src/cli/knowledge.py - Knowledge-Core Operator CLI
# =============================================================================
#
# Command-line front end for the two-stage ingestion pipeline and the
# retrieval service. Every command builds the full component graph through
# src.main.build_components(), so the CLI uses exactly the same providers,
# queues and databases as any other entry point.
#
# Supported subcommands:
#
#   enqueue    - Queue a text file for chunking (stage 1 of the pipeline)
#   work       - Run the chunk and embedding workers (until idle or forever)
#   ingest     - Chunk + embed a file synchronously, bypassing the queues
#   status     - Chunk status for a document or a single chunk
#   retrieve   - Run a workspace-scoped query and print contexts + prompt
#   workspaces - List configured workspaces
#
# Usage examples:
#   python -m src.cli.knowledge enqueue --file faq.txt --document-id faq \
#       --workspace acme-support --source-type file
#   python -m src.cli.knowledge work
#   python -m src.cli.knowledge status --document-id faq
#   python -m src.cli.knowledge retrieve --workspace acme-support \
#       --query "How do I reset my password?"
# =============================================================================

"""Operator CLI for the workspace knowledge core.

Usage::

    python -m src.cli.knowledge enqueue --file faq.txt --document-id faq \\
        --workspace acme-support

    python -m src.cli.knowledge work

    python -m src.cli.knowledge retrieve --workspace acme-support \\
        --query "How do I reset my password?" --json
"""

from __future__ import annotations

import argparse
import asyncio
import json
import sys
from pathlib import Path
from typing import Any

from src.config.settings import Settings
from src.utils.errors import KnowledgeBaseError
from src.utils.logging import configure_logging


def _read_text(path: str) -> str:
    return Path(path).read_text(encoding="utf-8")


def _source_from_args(args: argparse.Namespace) -> dict[str, Any]:
    """Build the document source payload from common ``--source-*`` flags."""
    filename = args.filename
    if filename is None and args.source_type == "file" and getattr(args, "file", None):
        filename = Path(args.file).name
    return {
        "source_type": args.source_type,
        "url": args.url,
        "filename": filename,
        "title": args.title,
        "workspace_id": args.workspace,
    }


async def _prepare(app_settings: Settings) -> dict[str, Any]:
    from src.main import build_components, initialize_components

    components = build_components(app_settings)
    await initialize_components(components)
    return components


# ---------------------------------------------------------------------------
# Subcommand handlers
# ---------------------------------------------------------------------------


async def _handle_enqueue(args: argparse.Namespace, app_settings: Settings) -> int:
    """Queue a document for chunking."""
    components = await _prepare(app_settings)
    job_id = await components["training_pipeline"].enqueue_document_job(
        document_id=args.document_id,
        text=_read_text(args.file),
        source=_source_from_args(args),
        job_id=args.job_id,
    )
    print(f"Enqueued document '{args.document_id}'")
    print(f"  Job ID: {job_id}")
    return 0


async def _handle_work(args: argparse.Namespace, app_settings: Settings) -> int:
    """Run both queue workers."""
    from src.main import drain_pipeline

    components = await _prepare(app_settings)
    if not args.forever:
        processed = await drain_pipeline(components)
        print("Queues drained:")
        print(f"  Chunk jobs:     {processed['chunk_jobs']}")
        print(f"  Embedding jobs: {processed['embedding_jobs']}")
        return 0

    stop = asyncio.Event()
    try:
        await asyncio.gather(
            components["chunk_runner"].run_forever(stop),
            components["embedding_runner"].run_forever(stop),
        )
    except asyncio.CancelledError:
        stop.set()
    return 0


async def _handle_ingest(args: argparse.Namespace, app_settings: Settings) -> int:
    """Chunk and embed a document synchronously."""
    components = await _prepare(app_settings)
    print(f"Ingesting document: {args.document_id}")
    print(f"  File: {args.file}")

    result = await components["direct_ingestion"].ingest_document(
        document_id=args.document_id,
        text=_read_text(args.file),
        source=_source_from_args(args),
    )

    print("\nIngestion complete:")
    print(f"  Language:          {result.language.value}")
    print(f"  Chunks created:    {result.chunks_created}")
    print(f"  Chunks vectorized: {result.chunks_vectorized}")
    print(f"  Total tokens:      {result.total_tokens}")
    print(f"  Time:              {result.ingestion_time:.2f}s")
    if result.error:
        print(f"  Error:             {result.error}", file=sys.stderr)
        return 1
    return 0


async def _handle_status(args: argparse.Namespace, app_settings: Settings) -> int:
    """Print chunk status for a document or a single chunk."""
    components = await _prepare(app_settings)
    pipeline = components["training_pipeline"]

    if args.chunk_id:
        record = await pipeline.get_chunk_status(args.chunk_id)
        if record is None:
            print(f"Chunk not found: {args.chunk_id}", file=sys.stderr)
            return 1
        print(f"Chunk {record.chunk_id}")
        print(f"  Status:   {record.status.value}")
        print(f"  Attempts: {record.attempts}")
        print(f"  Tokens:   {record.token_count} [{record.token_range.start}, {record.token_range.end})")
        print(f"  Vector:   {len(record.vector) if record.vector else 0} dims")
        if record.error:
            print(f"  Error:    {record.error}")
        return 0

    counts = await pipeline.get_document_status(args.document_id)
    total = sum(counts.values())
    print(f"Document {args.document_id}")
    print("=" * 40)
    print(f"  Total chunks: {total}")
    for status, count in sorted(counts.items(), key=lambda item: item[0].value):
        print(f"    {status.value:<12} {count}")
    return 0


async def _handle_retrieve(args: argparse.Namespace, app_settings: Settings) -> int:
    """Run a retrieval query."""
    components = await _prepare(app_settings)
    response = await components["retrieval_service"].retrieve(
        workspace_id=args.workspace,
        query=args.query,
        language=args.language,
        max_contexts=args.max_contexts,
        mmr_lambda=args.mmr_lambda,
    )

    if args.json:
        print(json.dumps(response.model_dump(mode="json"), indent=2, ensure_ascii=False))
        return 0

    meta = response.metadata
    print(f"Workspace: {meta.workspace_name} ({meta.workspace_id})")
    print(f"Language:  {meta.language.value}  Tone: {meta.tone.value}")
    print(f"Contexts:  {meta.context_count}  Confidence: {meta.confidence:.2f}")
    for context in response.contexts:
        print(f"\n  [{context.citation.id}] {context.citation.title}  (score {context.score:.3f})")
        print(f"    {context.summary}")
    print("\nPrompt instructions:")
    for section in response.prompt.instructions.split("\n\n"):
        print(f"  {section}")
    return 0


async def _handle_workspaces(app_settings: Settings) -> int:
    """List configured workspaces."""
    components = await _prepare(app_settings)
    workspaces = await components["workspaces"].list_workspaces()
    print("Workspaces")
    print("=" * 40)
    for workspace in workspaces:
        languages = ",".join(lang.value for lang in workspace.languages)
        print(f"  {workspace.id:<20} {workspace.status.value:<9} {languages:<6} {workspace.name}")
    return 0


# ---------------------------------------------------------------------------
# Argument parser
# ---------------------------------------------------------------------------


def _add_source_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--file", required=True, help="Path to a UTF-8 text file")
    parser.add_argument("--document-id", required=True, dest="document_id", help="Document id")
    parser.add_argument("--workspace", required=True, help="Workspace id the document belongs to")
    parser.add_argument(
        "--source-type",
        default="file",
        dest="source_type",
        help="Source type label (default: file)",
    )
    parser.add_argument("--url", default=None, help="Source URL")
    parser.add_argument("--filename", default=None, help="Source filename (default: file name)")
    parser.add_argument("--title", default=None, help="Human-readable document title")


def _build_parser() -> argparse.ArgumentParser:
    """Build the argparse parser for the knowledge CLI."""
    parser = argparse.ArgumentParser(
        prog="python -m src.cli.knowledge",
        description="Ingest documents into and retrieve from the workspace knowledge core.",
    )
    parser.add_argument("--log-level", default=None, dest="log_level", help="Override LOG_LEVEL")
    subparsers = parser.add_subparsers(dest="command", help="Knowledge commands")

    # -- enqueue --
    enqueue_parser = subparsers.add_parser("enqueue", help="Queue a document for chunking")
    _add_source_arguments(enqueue_parser)
    enqueue_parser.add_argument("--job-id", default=None, dest="job_id", help="Explicit job id")

    # -- work --
    work_parser = subparsers.add_parser("work", help="Run the chunk and embedding workers")
    work_parser.add_argument(
        "--forever",
        action="store_true",
        help="Keep polling instead of exiting once both queues are idle",
    )

    # -- ingest --
    ingest_parser = subparsers.add_parser("ingest", help="Chunk and embed a document now")
    _add_source_arguments(ingest_parser)

    # -- status --
    status_parser = subparsers.add_parser("status", help="Show chunk status")
    target = status_parser.add_mutually_exclusive_group(required=True)
    target.add_argument("--document-id", dest="document_id", help="Document id")
    target.add_argument("--chunk-id", dest="chunk_id", help="Chunk id")

    # -- retrieve --
    retrieve_parser = subparsers.add_parser("retrieve", help="Retrieve contexts for a query")
    retrieve_parser.add_argument("--workspace", required=True, help="Workspace id")
    retrieve_parser.add_argument("--query", required=True, help="User question")
    retrieve_parser.add_argument("--language", default=None, help="en or nl (default: detect)")
    retrieve_parser.add_argument(
        "--max-contexts", type=int, default=None, dest="max_contexts", help="Context limit"
    )
    retrieve_parser.add_argument(
        "--lambda", type=float, default=None, dest="mmr_lambda", help="MMR relevance weight"
    )
    retrieve_parser.add_argument("--json", action="store_true", help="Print the raw response")

    # -- workspaces --
    subparsers.add_parser("workspaces", help="List configured workspaces")

    return parser


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------


def main(argv: list[str] | None = None) -> None:
    """CLI entry point.

    Parses the subcommand, loads ``Settings`` from the environment / .env
    file, configures logging and dispatches to the matching handler.
    Knowledge-core errors are reported on stderr with exit code 1.
    """
    parser = _build_parser()
    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        sys.exit(1)

    app_settings = Settings()
    configure_logging(
        log_level=args.log_level or app_settings.log_level, app_env=app_settings.app_env
    )

    handlers = {
        "enqueue": lambda: _handle_enqueue(args, app_settings),
        "work": lambda: _handle_work(args, app_settings),
        "ingest": lambda: _handle_ingest(args, app_settings),
        "status": lambda: _handle_status(args, app_settings),
        "retrieve": lambda: _handle_retrieve(args, app_settings),
        "workspaces": lambda: _handle_workspaces(app_settings),
    }

    try:
        exit_code = asyncio.run(handlers[args.command]())
    except KnowledgeBaseError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        exit_code = 1
    except OSError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        exit_code = 1
    except KeyboardInterrupt:
        exit_code = 130

    sys.exit(exit_code)


if __name__ == "__main__":
    main()
