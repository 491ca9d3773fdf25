"""
Line-window chunker for the embedding index.

Splits file text into fixed-size, overlapping line windows.  Every line of
a file lands in at least one window, and consecutive windows share
``overlap`` lines of context so a match near a boundary is still embedded
together with its surroundings.
"""

from __future__ import annotations

from dataclasses import dataclass

DEFAULT_WINDOW = 50
DEFAULT_OVERLAP = 5


@dataclass(frozen=True)
class LineChunk:
    """A window of lines, 1-based and inclusive on both ends."""

    start_line: int
    end_line: int
    text: str


def split_lines(
    content: str,
    window: int = DEFAULT_WINDOW,
    overlap: int = DEFAULT_OVERLAP,
) -> list[LineChunk]:
    """
    Split *content* into overlapping line windows.

    Parameters
    ----------
    content:
        Full text of a file.
    window:
        Maximum number of lines per chunk.
    overlap:
        Number of lines shared by consecutive chunks.

    Returns
    -------
    list[LineChunk]
        Chunks in file order.  Windows whose text is blank after trimming
        are dropped; an empty file yields ``[]``.

    Raises
    ------
    ValueError
        If ``window < 1``, ``overlap < 0`` or ``overlap >= window``.
    """
    if window < 1:
        raise ValueError(f"window must be at least 1, got {window}")
    if overlap < 0 or overlap >= window:
        raise ValueError(
            f"overlap must be in [0, {window - 1}], got {overlap}"
        )

    # Split on "\n" only: splitlines() also breaks on form feeds and other
    # separators, which would shift line numbers.
    lines = content.split("\n")
    if lines and lines[-1] == "":
        lines.pop()
    total = len(lines)
    step = window - overlap
    chunks: list[LineChunk] = []

    start = 0
    while start < total:
        end = min(start + window, total)
        text = "\n".join(lines[start:end])
        if text.strip():
            chunks.append(LineChunk(start_line=start + 1, end_line=end, text=text))
        if end >= total:
            break
        start += step

    return chunks
