"""
`codecli` command line.

Commands
--------
codecli index                          -- index the workspace and save it
codecli index --root src --ext .py     -- index a subtree, one extension
codecli index --keep-going             -- record failing files, keep indexing
codecli search "<query>"               -- semantic search
codecli search "<query>" --limit 5
codecli status                         -- show index summary
"""

from __future__ import annotations

import argparse
import logging
import os
import sys
import time
from typing import Optional

from tqdm import tqdm

from .cli_display import print_results, setup_logger
from .config import Config
from .index import CodeIndexError, IndexStore
from .llm import create_embedding_client

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _make_store(cfg: Config, with_embedder: bool = True) -> IndexStore:
    embedder = create_embedding_client(cfg) if with_embedder else None
    return IndexStore(
        embedder,
        window=cfg.CHUNK_LINES,
        overlap=cfg.CHUNK_OVERLAP,
        exclude_dirs=cfg.EXCLUDE_DIRS,
    )


# ---------------------------------------------------------------------------
# Sub-command handlers
# ---------------------------------------------------------------------------

def _cmd_index(args: argparse.Namespace, cfg: Config) -> None:
    """Index the workspace and save the result."""
    root = os.path.abspath(args.root or cfg.WORKSPACE_ROOT)
    extensions = args.ext or cfg.INCLUDE_EXTENSIONS
    store = _make_store(cfg)

    print(f"Indexing workspace: {root}")
    pbar = tqdm(total=None, unit="file", desc="Embedding")

    def _progress(current: int, total: int, filename: str) -> None:
        if pbar.total != total:
            pbar.total = total
            pbar.refresh()
        pbar.set_postfix_str(os.path.basename(filename), refresh=False)
        pbar.update(1)

    t0 = time.perf_counter()
    try:
        report = store.ingest(
            root, extensions,
            fail_fast=not args.keep_going,
            progress_callback=_progress,
        )
    finally:
        pbar.close()
    elapsed = time.perf_counter() - t0

    store.save(cfg.INDEX_PATH)
    summary = report.summary()
    print(
        f"\nIndex complete:\n"
        f"  Files   : {summary['indexed']}\n"
        f"  Skipped : {summary['skipped']}\n"
        f"  Failed  : {summary['failed']}\n"
        f"  Chunks  : {summary['chunk_count']}\n"
        f"  Saved to: {cfg.INDEX_PATH}\n"
        f"  Time    : {elapsed:.1f}s"
    )
    for failure in report.failed:
        print(f"  ! {failure.path}: {failure.error}", file=sys.stderr)


def _cmd_search(args: argparse.Namespace, cfg: Config) -> None:
    """Semantic search over the saved index."""
    query = " ".join(args.query)
    limit = args.limit if args.limit is not None else cfg.SEARCH_LIMIT

    store = _make_store(cfg)
    store.load(cfg.INDEX_PATH)

    t0 = time.perf_counter()
    results = store.query(query, limit=limit)
    elapsed_ms = (time.perf_counter() - t0) * 1000

    print_results(results, query)
    print(f"  Search time: {elapsed_ms:.1f}ms")


def _cmd_status(args: argparse.Namespace, cfg: Config) -> None:
    """Print a summary of the saved index."""
    store = _make_store(cfg, with_embedder=False)
    store.load(cfg.INDEX_PATH)
    stats = store.stats()
    dims = ", ".join(str(d) for d in stats["dimensions"]) or "-"
    print(
        f"Index      : {cfg.INDEX_PATH}\n"
        f"Documents  : {stats['documents']}\n"
        f"Chunks     : {stats['chunks']}\n"
        f"Dimensions : {dims}"
    )
    if len(stats["dimensions"]) > 1:
        print("Warning: vectors of several dimensions are stored; "
              "re-run `codecli index` after changing the embedding model.")


# ---------------------------------------------------------------------------
# Parser
# ---------------------------------------------------------------------------

def _build_parser() -> argparse.ArgumentParser:
    """Build and return the `codecli` argument parser."""
    parser = argparse.ArgumentParser(
        prog="codecli",
        description="Semantic search over a local codebase",
    )
    parser.add_argument("--config", default=None, help="Path to a .codecli.yaml file")
    subparsers = parser.add_subparsers(dest="cmd", metavar="COMMAND")
    subparsers.required = True

    # --- index ---
    index_p = subparsers.add_parser("index", help="Index the workspace for semantic search")
    index_p.add_argument("--root", default=None, help="Workspace root (default: config)")
    index_p.add_argument(
        "--ext", action="append", default=None, metavar="EXT",
        help="File extension to include; repeat for several (default: config)",
    )
    index_p.add_argument(
        "--keep-going", action="store_true",
        help="Record files that fail and continue instead of aborting",
    )
    index_p.set_defaults(func=_cmd_index)

    # --- search ---
    search_p = subparsers.add_parser("search", help="Search the indexed codebase")
    search_p.add_argument("query", nargs="+", help="Natural-language search query")
    search_p.add_argument(
        "--limit", type=int, default=None,
        help="Number of results to return (default: config, 10)",
    )
    search_p.set_defaults(func=_cmd_search)

    # --- status ---
    status_p = subparsers.add_parser("status", help="Show index summary")
    status_p.set_defaults(func=_cmd_status)

    return parser


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------

def main(argv: Optional[list[str]] = None) -> None:
    """Main entry point for the `codecli` command."""
    parser = _build_parser()
    args = parser.parse_args(argv)

    cfg = Config.load(args.config)
    setup_logger(cfg.LOG_DIR, cfg.LOG_LEVEL)

    try:
        args.func(args, cfg)
    except (CodeIndexError, ValueError) as exc:
        logger.error("%s failed: %s", args.cmd, exc)
        print(f"Error: {exc}", file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    main()
