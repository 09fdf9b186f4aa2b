"""pagewise command line interface."""

import os
import sys
import json
import logging
import argparse
from typing import List, Optional

import uvicorn

from config.database import DatabaseConfig
from config.settings import Settings
from indexer.embeddings import EmbeddingError
from observability.logging import setup_logging
from .services import Services, build_services

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="pagewise", description="pagewise site indexer and retriever")
    parser.add_argument("--config", help="YAML settings file")
    parser.add_argument("--db", help="SQLite database path")
    parser.add_argument("--log-level", default="INFO", help="Logging level")
    parser.add_argument("--json-logs", action="store_true", help="Log as JSON")

    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("index-all", help="Queue new sitemap URLs for indexing")

    work = sub.add_parser("work", help="Drain the crawl queue")
    work.add_argument("--batch-size", type=int, help="URLs per batch")
    work.add_argument("--once", action="store_true", help="Process a single batch only")

    index_url = sub.add_parser("index-url", help="Reindex a single URL")
    index_url.add_argument("url")
    index_url.add_argument("--force", action="store_true", help="Reindex even when unchanged")
    index_url.add_argument("--variant", action="append", default=[], help="Other stored URL for the same page")

    retrieve = sub.add_parser("retrieve", help="Print context and sources for a question")
    retrieve.add_argument("question")
    retrieve.add_argument("--top-k", type=int, help="Maximum number of sources")

    purge = sub.add_parser("purge-cache", help="Purge cached answers")
    purge.add_argument("--url", action="append", default=[], help="Cited URL to purge")
    purge.add_argument("--path", action="append", default=[], help="Cited path to purge")
    purge.add_argument("--all", action="store_true", help="Purge every cached answer")

    sub.add_parser("status", help="Show crawl queue and index status")

    serve = sub.add_parser("serve", help="Run the HTTP API")
    serve.add_argument("--host", default="127.0.0.1")
    serve.add_argument("--port", type=int, default=8000)
    return parser


def _load_settings(args) -> Settings:
    if args.config:
        return Settings.from_yaml(args.config)
    return Settings.from_env()


def _db_config(args) -> DatabaseConfig:
    config = DatabaseConfig.from_env()
    if args.db:
        config = config.model_copy(update={"sqlite_path": args.db})
    return config


def _print(data) -> None:
    print(json.dumps(data, indent=2, ensure_ascii=False, default=str))


def _work(svc: Services, batch_size: Optional[int], once: bool) -> int:
    total = 0
    while True:
        result = svc.site_indexer.work_batch(batch_size)
        if not result.acquired:
            print("Another worker holds the crawl lease.")
            return 1
        total += result.processed
        if once or result.done or result.processed == 0:
            break
    print(f"Processed {total} URLs, {result.remaining} remaining.")
    return 0


def run(args, svc: Services) -> int:
    if args.command == "index-all":
        report = svc.site_indexer.index_all()
        print(report.message)
        return 0 if report.ok else 1

    if args.command == "work":
        return _work(svc, args.batch_size, args.once)

    if args.command == "index-url":
        result = svc.site_indexer.index_single_url(args.url, force=args.force, known_variants=args.variant)
        print({True: "indexed", None: "skipped", False: "failed"}[result])
        return 1 if result is False else 0

    if args.command == "retrieve":
        result = svc.retriever.retrieve(args.question, top_k=args.top_k)
        if result.empty:
            print("No context found.")
            return 0
        print(result.context)
        print()
        _print([s.to_dict() for s in result.sources])
        return 0

    if args.command == "purge-cache":
        if args.all:
            purged = svc.cache.delete_all()
        elif args.url or args.path:
            purged = svc.cache.purge_by_source_urls(args.url, args.path)
        else:
            print("Nothing to purge: pass --url, --path or --all.")
            return 2
        print(f"Purged {purged} cached answers.")
        return 0

    if args.command == "status":
        _print(svc.site_indexer.status())
        return 0

    raise ValueError(f"Unknown command: {args.command}")


def serve(args) -> int:
    """Run the API under uvicorn; settings and database come from the environment."""
    if args.config:
        os.environ["PAGEWISE_CONFIG"] = args.config
    if args.db:
        os.environ["PAGEWISE_SQLITE_PATH"] = args.db
    os.environ["PAGEWISE_LOG_LEVEL"] = args.log_level
    if args.json_logs:
        os.environ["PAGEWISE_LOG_JSON"] = "1"
    uvicorn.run("server.rag_api:app", host=args.host, port=args.port, log_config=None)
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    if args.command == "serve":
        return serve(args)

    setup_logging(level=args.log_level, use_json=args.json_logs)

    svc = build_services(_load_settings(args), _db_config(args), with_scheduler=False)
    try:
        return run(args, svc)
    except EmbeddingError as e:
        logger.error(f"Error: {e}")
        return 1
    finally:
        svc.close()


if __name__ == "__main__":
    sys.exit(main())
