#!/usr/bin/env python3
"""
Review RAG command line

Build and query the codebase index that supplies related code to AI code
reviews.

Examples:
    review-rag index
    review-rag search "retry with exponential backoff"
    git diff | review-rag context --diff - --changed src/api/client.py
"""

import argparse
import logging
import os
import signal
import sys
import threading
import traceback
from pathlib import Path
from typing import List, Optional

from .config import load_rag_config
from .indexing.indexer import IndexingStats
from .indexing.retriever import build_context_section
from .progress_loader import IndexProgress, LoaderStyle
from .session import RagSession

LOG_FORMAT = '%(asctime)s | %(levelname)s | %(message)s'
LOG_DATE_FORMAT = '%Y-%m-%d %H:%M:%S'


def configure_logging(level: str = "WARNING", log_file: Optional[str] = None):
    """Send library logs to stderr and, optionally, to a UTF-8 log file."""
    formatter = logging.Formatter(LOG_FORMAT, datefmt=LOG_DATE_FORMAT)

    root = logging.getLogger("review_rag")
    root.setLevel(level.upper())
    root.handlers.clear()

    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setFormatter(formatter)
    root.addHandler(console_handler)

    if log_file:
        file_handler = logging.FileHandler(log_file, mode='a', encoding='utf-8')
        file_handler.setFormatter(formatter)
        root.addHandler(file_handler)


def format_stats(stats: IndexingStats) -> str:
    return (
        f"{stats.files_indexed} files, {stats.chunks_created} chunks, "
        f"{stats.files_skipped} skipped ({stats.duration_ms / 1000:.1f}s)"
    )


def cmd_index(session: RagSession, args) -> int:
    cancel_event = threading.Event()

    def request_cancel(signum, frame):
        cancel_event.set()

    previous_handler = signal.signal(signal.SIGINT, request_cancel)
    try:
        with IndexProgress("Indexing codebase", LoaderStyle.PROGRESS_BAR) as progress:
            stats = session.index_workspace(cancel_event, progress.update)
    finally:
        signal.signal(signal.SIGINT, previous_handler)

    if stats.cancelled:
        print(f"⏹️ Indexing cancelled: {format_stats(stats)}")
    else:
        print(f"✅ Codebase indexed: {format_stats(stats)}")
    return 0


def cmd_update(session: RagSession, args) -> int:
    for path, created in session.index_files(args.paths).items():
        if created:
            print(f"🔄 {path}: {created} chunks")
        else:
            print(f"🗑️ {path}: no chunks (deleted, empty or skipped)")
    return 0


def cmd_watch(session: RagSession, args) -> int:
    stop_event = threading.Event()

    def on_update(stats: IndexingStats):
        if stats.files_indexed or stats.files_removed or stats.files_skipped:
            print(f"🔄 {format_stats(stats)}, {stats.files_removed} removed")

    print(f"👀 Watching {session.workspace.root} (every {args.interval}s, Ctrl+C to stop)")
    try:
        session.indexer().watch_and_update(args.interval, stop_event, on_update)
    except KeyboardInterrupt:
        stop_event.set()
        print("\n⏹️ Watcher stopped")
    return 0


def cmd_clear(session: RagSession, args) -> int:
    session.clear_index()
    print("🗑️ Codebase index cleared.")
    return 0


def cmd_status(session: RagSession, args) -> int:
    status = session.status()
    print(f"📁 Workspace: {status['workspace']}")
    print(f"💾 Index: {status['index_path']} ({status['index_size_mb']:.2f} MB)")
    print(f"📊 {status['total_chunks']} chunks from {status['total_files']} files")
    if status['embedding_dimensions']:
        dims = ", ".join(str(d) for d in status['embedding_dimensions'])
        print(f"🔢 Embedding dimensions: {dims}")
    for ext, count in sorted(status['file_types'].items()):
        print(f"  • {ext}: {count}")
    print(f"🕒 Updated: {status['updated_at']}")
    print(f"⚙️ RAG enabled: {status['enabled']} (model {status['embedding_model']})")
    return 0


def cmd_search(session: RagSession, args) -> int:
    results = session.retriever().retrieve(args.query)
    if not results:
        print("🔍 No similar code found in the index.")
        return 0

    for rank, result in enumerate(results, 1):
        chunk = result.chunk
        print(f"{rank}. {chunk.file_path}:{chunk.start_line}-{chunk.end_line} "
              f"(similarity {result.score:.2f})")
    return 0


def _read_diff(source: str) -> str:
    if source == "-":
        return sys.stdin.read()
    return Path(source).read_text(encoding='utf-8')


def cmd_context(session: RagSession, args) -> int:
    if not session.config.enabled:
        print("⚠️ RAG is disabled. Set REVIEW_RAG_ENABLED=1 to include related code in reviews.")
        return 1

    context = session.get_context(_read_diff(args.diff), args.changed or [])
    print(f"🔍 {context.summary}")
    section = build_context_section(context.results)
    if section:
        print(section)
    return 0


COMMANDS = {
    "index": cmd_index,
    "update": cmd_update,
    "watch": cmd_watch,
    "clear": cmd_clear,
    "status": cmd_status,
    "search": cmd_search,
    "context": cmd_context,
}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog='review-rag',
        description='Codebase index of related code for AI-assisted reviews'
    )
    parser.add_argument('-w', '--workspace', type=str, default='.', help='Workspace root (default: current directory)')
    parser.add_argument('--env-file', type=str, help='.env file with REVIEW_RAG_* settings')
    parser.add_argument('--log-level', type=str.upper, default=os.getenv('REVIEW_RAG_LOG_LEVEL', 'WARNING').upper(),
                        choices=['DEBUG', 'INFO', 'WARNING', 'ERROR'], help='Logging level (default: WARNING)')
    parser.add_argument('--log-file', type=str, help='Append logs to this file')
    parser.add_argument('--no-network', action='store_true', help='Use local fallback embeddings only')

    subparsers = parser.add_subparsers(dest='command', required=True)

    subparsers.add_parser('index', help='Index all matching workspace files')

    update_parser = subparsers.add_parser('update', help='Re-index specific files (drops deleted ones)')
    update_parser.add_argument('paths', nargs='+', help='Files to update')

    watch_parser = subparsers.add_parser('watch', help='Poll the workspace and keep the index current')
    watch_parser.add_argument('--interval', type=float, default=10.0, help='Seconds between polls')

    subparsers.add_parser('clear', help='Delete every chunk from the index')
    subparsers.add_parser('status', help='Show index statistics')

    search_parser = subparsers.add_parser('search', help='Find code similar to a query')
    search_parser.add_argument('query', help='Query text')

    context_parser = subparsers.add_parser('context', help='Related code for a diff, formatted for a review prompt')
    context_parser.add_argument('--diff', required=True, help="Diff file, or '-' for stdin")
    context_parser.add_argument('--changed', nargs='*', help='Paths changed by the diff (excluded from results)')

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    configure_logging(args.log_level, args.log_file)

    try:
        config = load_rag_config(args.env_file)
        session = RagSession(
            args.workspace,
            config,
            use_network=False if args.no_network else None
        )
        return COMMANDS[args.command](session, args)
    except ValueError as e:
        print(f"❌ Configuration error: {e}")
        return 2
    except KeyboardInterrupt:
        print("\n👋 Goodbye!")
        return 130
    except Exception as e:
        print(f"❌ Fatal error: {str(e)}")
        traceback.print_exc()
        return 1


if __name__ == "__main__":
    sys.exit(main())
