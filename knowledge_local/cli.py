"""
Command Line Interface for the local knowledge index
"""

from __future__ import annotations

import argparse
import asyncio
import sys
from typing import List, Optional

from .config import load_config
from .engine import KnowledgeEngine
from .errors import KnowledgeError
from .local_index.utils import safe_relpath
from .logging import configure_logging


def index_cli(engine: KnowledgeEngine, args: argparse.Namespace) -> int:
    """Index command"""
    if not engine.is_operational():
        print(f"Embedding backend unavailable: {engine.get_init_error()}", file=sys.stderr)
        return 1

    print(f"Indexing folder: {engine.scanner.root}")
    progress = None if args.quiet else (lambda msg: print(f"  {msg}"))
    stats = asyncio.run(engine.ingest_with_stats(progress))

    print(f"\nIndexed {stats.total} documents")
    print(f"  embedded: {stats.embedded}")
    print(f"  reused:   {stats.reused}")
    print(f"  dropped:  {stats.dropped}")
    print(f"  skipped:  {stats.skipped}")
    return 0


def search_cli(engine: KnowledgeEngine, args: argparse.Namespace) -> int:
    """Search command"""
    if not engine.is_operational():
        print(f"Embedding backend unavailable: {engine.get_init_error()}", file=sys.stderr)
        return 1

    print(f"\nSearching for: '{args.query}'")
    print("-" * 60)

    results = asyncio.run(engine.search(args.query, limit=args.limit, min_score=args.min_score))
    if not results:
        print("No relevant documents found")
        return 0

    for i, result in enumerate(results):
        snippet = " ".join(result.content.split())
        print(f"\nResult {i + 1} (Score: {result.score:.3f})")
        print(f"File: {safe_relpath(result.path, engine.scanner.root)}")
        print(f"Content: {snippet[:200]}{'...' if len(snippet) > 200 else ''}")
        print("-" * 40)
    return 0


def stats_cli(engine: KnowledgeEngine, args: argparse.Namespace) -> int:
    """Stats command"""
    stats = engine.stats()

    print("\nKNOWLEDGE INDEX STATISTICS")
    print("=" * 40)
    print(f"Documents:   {stats['documents']}")
    print(f"Model:       {stats['model'] or 'n/a'}")
    print(f"Dimension:   {stats['dimension'] or 'n/a'}")
    print(f"Knowledge:   {stats['knowledge_dir']}")
    print(f"Snapshot:    {stats['index_file']}")
    print(f"Enabled:     {stats['enabled']}")
    print(f"Operational: {stats['operational']}")
    if stats["init_error"]:
        print(f"Init error:  {stats['init_error']}")
    return 0


def clear_cli(engine: KnowledgeEngine, args: argparse.Namespace) -> int:
    """Clear command"""
    if engine.clear_index():
        print(f"Removed {engine.store.path}")
    else:
        print("No index snapshot to remove")
    return 0


COMMANDS = {
    "index": index_cli,
    "search": search_cli,
    "stats": stats_cli,
    "clear": clear_cli,
}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="knowledge-local", description="Local semantic search over a knowledge folder")
    parser.add_argument("-c", "--config", help="Path to a TOML config file")
    parser.add_argument("--knowledge-path", help="Override the knowledge folder")
    parser.add_argument("--index-path", help="Override the index snapshot location")
    parser.add_argument("--log-level", help="Log level (DEBUG, INFO, WARNING, ...)")
    subparsers = parser.add_subparsers(dest="command", required=True, help="Available commands")

    index_parser = subparsers.add_parser("index", help="Index the knowledge folder")
    index_parser.add_argument("-q", "--quiet", action="store_true", help="Hide progress messages")

    search_parser = subparsers.add_parser("search", help="Search indexed documents")
    search_parser.add_argument("query", help="Search query")
    search_parser.add_argument("-l", "--limit", type=int, default=None, help="Maximum results")
    search_parser.add_argument("--min-score", type=float, default=None, help="Minimum cosine similarity")

    subparsers.add_parser("stats", help="Show index statistics")
    subparsers.add_parser("clear", help="Delete the index snapshot")
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    """Main CLI function"""
    args = build_parser().parse_args(argv)

    try:
        config = load_config(
            args.config,
            knowledge_path=args.knowledge_path,
            index_path=args.index_path,
        )
        if args.log_level:
            config.logging.level = args.log_level.upper()
        configure_logging(config.logging)

        engine = KnowledgeEngine(config.knowledge)
        return COMMANDS[args.command](engine, args)
    except KnowledgeError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    except KeyboardInterrupt:
        return 130


if __name__ == "__main__":
    sys.exit(main())
