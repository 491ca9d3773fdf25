import logging
import os
from datetime import datetime

from .index.models import SearchResult

# Preview lines printed per search result
_PREVIEW_LINES = 8


def setup_logger(log_dir: str = ".codecli/logs", level: str = "INFO") -> logging.Logger:
    """Creates a file logger. All verbose output goes here."""
    os.makedirs(log_dir, exist_ok=True)
    timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
    log_file = os.path.join(log_dir, f"codecli_{timestamp}.log")

    logger = logging.getLogger("codecli")
    logger.setLevel(getattr(logging, level.upper(), logging.INFO))

    # Repeated calls in one process reuse the existing handler for log_dir
    target_dir = os.path.abspath(log_dir)
    for handler in logger.handlers:
        if (isinstance(handler, logging.FileHandler)
                and os.path.dirname(handler.baseFilename) == target_dir):
            handler.setLevel(logger.level)
            return logger

    # File handler — captures everything at or above the configured level
    fh = logging.FileHandler(log_file, encoding="utf-8")
    fh.setLevel(logger.level)
    fh.setFormatter(logging.Formatter(
        "%(asctime)s [%(levelname)s] %(name)s: %(message)s", datefmt="%H:%M:%S"
    ))
    logger.addHandler(fh)

    return logger


def format_search_result(result: SearchResult, preview_lines: int = _PREVIEW_LINES) -> str:
    """Render one result as a location header followed by a content preview."""
    header = (f"{result.path}:{result.start_line}-{result.end_line}"
              f"  (score: {result.score:.4f})")
    lines = result.content.splitlines()
    body = lines[:preview_lines]
    if len(lines) > preview_lines:
        body.append(f"... ({len(lines) - preview_lines} more line(s))")
    return "\n".join([header] + [f"    {line}" for line in body])


def print_results(results: list[SearchResult], query: str) -> None:
    """Pretty-print ranked search results."""
    if not results:
        print(f"  (no results for: {query})")
        return
    print(f"\n{query}  [{len(results)} result(s)]")
    print("-" * 60)
    for r in results:
        print(format_search_result(r))
        print()
