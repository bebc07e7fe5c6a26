"""Command-line entry point for AdvisorEngine."""

from __future__ import annotations

import argparse
import asyncio
import json
import sys
from pathlib import Path
from typing import TYPE_CHECKING

from advisor.assessment import BusinessProfile, OpportunityAssessor
from advisor.chat import ChatService
from advisor.compression import ContextCompressor
from advisor.config import config
from advisor.conversation import ConversationOrchestrator
from advisor.embeddings import EmbeddingService
from advisor.errors import AdvisorError
from advisor.ingestion import KnowledgeBaseIngestor
from advisor.llm import LLMClient
from advisor.rate_limit import (
    create_rate_limit_headers,
    create_rate_limiter,
    get_rate_limit_tier,
)
from advisor.retrieval_cache import CachedKnowledgeBaseRetrieval
from advisor.services import ServiceRecommendationEngine
from advisor.storage import SQLiteConversationStore
from advisor.vector_store import get_vector_index

if TYPE_CHECKING:
    from collections.abc import Sequence

logger = config.get_logger(__name__)

CHAT_PATH = "/api/chat"


def parse_args(argv: Sequence[str] | None = None) -> argparse.Namespace:
    """Build the CLI parser and read command-line arguments."""  # noqa: DOC201
    parser = argparse.ArgumentParser(
        description="AdvisorEngine: staged AI advisory chat and opportunity assessment.",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    chat = subparsers.add_parser(
        "chat",
        help="Chat in a conversation; reads one message per stdin line.",
    )
    chat.add_argument("--guid", required=True, help="Conversation identifier.")
    chat.add_argument(
        "--industry",
        default=None,
        help="Industry used to ground answers in the knowledge base.",
    )

    assess = subparsers.add_parser(
        "assess",
        help="Rank AI opportunities and services for a business profile.",
    )
    assess.add_argument(
        "--profile",
        type=Path,
        required=True,
        help="JSON file with the business profile.",
    )
    assess.add_argument(
        "--no-rationale",
        dest="with_rationale",
        action="store_false",
        help="Skip model-written rationales.",
    )

    ingest = subparsers.add_parser(
        "ingest",
        help="Load documents into the knowledge base.",
    )
    ingest.add_argument(
        "path",
        type=Path,
        help="A document, or a directory with one sub-directory per industry.",
    )
    ingest.add_argument(
        "--industry",
        default=None,
        help="Industry of a single document (required when PATH is a file).",
    )
    ingest.add_argument("--title", default=None, help="Title of a single document.")
    ingest.add_argument("--source-url", default="", help="Source URL of a document.")

    subparsers.add_parser("health", help="Check knowledge-base retrieval health.")
    subparsers.add_parser("stats", help="Show knowledge-base and cache statistics.")
    return parser.parse_args(argv)


def print_json(payload: object) -> None:
    """Write a JSON document to stdout."""
    print(json.dumps(payload, indent=2, ensure_ascii=False))  # noqa: T201


def build_retrieval(llm: LLMClient | None = None) -> CachedKnowledgeBaseRetrieval:
    """Construct the cached retrieval client over the configured index."""  # noqa: DOC201
    return CachedKnowledgeBaseRetrieval.create(
        get_vector_index(),
        EmbeddingService(),
        llm,
    )


async def run_chat(guid: str, industry: str | None) -> int:
    """Answer stdin lines as one conversation, printing event-stream frames."""  # noqa: DOC201
    llm = LLMClient()
    retrieval = build_retrieval(llm)
    limiter = create_rate_limiter()
    service = ChatService(
        orchestrator=ConversationOrchestrator(ContextCompressor(llm)),
        llm=llm,
        repository=SQLiteConversationStore(config.CONVERSATION_DB_PATH),
        retrieval=retrieval,
    )
    tier = get_rate_limit_tier(CHAT_PATH, authenticated=True)
    retrieval.start_cleanup()
    try:
        while line := await asyncio.to_thread(sys.stdin.readline):
            message = line.strip()
            if not message:
                continue
            decision = await limiter.check_rate_limit(f"user:{guid}", tier)
            if not decision.success:
                logger.warning(
                    "Message rejected: %s", create_rate_limit_headers(decision)
                )
                continue
            async for frame in service.stream_chat(guid, message, industry):
                sys.stdout.write(frame)
                sys.stdout.flush()
    finally:
        await retrieval.close()
        await limiter.close()
        await llm.close()
    return 0


async def run_assess(profile_path: Path, *, with_rationale: bool) -> int:
    """Print ranked opportunities and matching services for a profile."""  # noqa: DOC201
    profile = BusinessProfile.from_dict(
        json.loads(profile_path.read_text(encoding="utf-8"))
    )
    llm = LLMClient() if with_rationale else None
    try:
        opportunities = await OpportunityAssessor(llm).assess(
            profile, with_rationale=with_rationale
        )
    finally:
        if llm is not None:
            await llm.close()

    recommendations = ServiceRecommendationEngine().recommend(profile, opportunities)
    print_json({
        "opportunities": [item.to_dict() for item in opportunities],
        "services": [item.to_dict() for item in recommendations],
    })
    return 0


async def run_ingest(
    path: Path, industry: str | None, title: str | None, source_url: str
) -> int:
    """Ingest a document or a directory tree."""  # noqa: DOC201
    ingestor = KnowledgeBaseIngestor(get_vector_index(), EmbeddingService())
    if path.is_dir():
        print_json(await ingestor.ingest_directory(path))
        return 0
    if not path.is_file():
        logger.error("Path not found: %s", path)
        return 1
    if not industry:
        logger.error("--industry is required when ingesting a single file")
        return 1
    written = await ingestor.ingest_file(path, industry, title, source_url)
    print_json({"file": str(path), "chunks": written})
    return 0


async def run_health() -> int:
    """Print the retrieval health report."""  # noqa: DOC201
    report = await build_retrieval().health_check()
    print_json(report)
    return 0 if report["status"] != "unhealthy" else 1


async def run_stats() -> int:
    """Print index and cache statistics."""  # noqa: DOC201
    retrieval = build_retrieval()
    print_json({
        "index": await retrieval.base.get_retrieval_stats(),
        "cache": retrieval.get_cache_stats(),
    })
    return 0


def main(argv: Sequence[str] | None = None) -> int:
    """Validate configuration and run the selected command."""  # noqa: DOC201
    args = parse_args(argv)

    config.setup_logging()

    try:
        config.validate()
    except ValueError:
        logger.exception("Configuration invalid")
        return 1

    if args.command == "chat":
        command = run_chat(args.guid, args.industry)
    elif args.command == "assess":
        command = run_assess(args.profile, with_rationale=args.with_rationale)
    elif args.command == "ingest":
        command = run_ingest(args.path, args.industry, args.title, args.source_url)
    elif args.command == "health":
        command = run_health()
    else:
        command = run_stats()

    try:
        return asyncio.run(command)
    except KeyboardInterrupt:
        logger.info("AdvisorEngine stopped by user")
        return 0
    except (AdvisorError, OSError, json.JSONDecodeError):
        logger.exception("Command '%s' failed", args.command)
        return 1


if __name__ == "__main__":
    sys.exit(main())
