"""
Split oversized text into overlapping chunks on natural boundaries.

Cut preference inside each window: paragraph break, sentence end, line
break, hard cut. A boundary is only used when it lies past the middle of
the window, so every chunk advances by more than the overlap and
chunk[i][overlap:] for i > 0 concatenates back to the original text.
"""

import re
from typing import List, Optional

PARAGRAPH_BREAK = "\n\n"
SENTENCE_END_RE = re.compile(r"[.!?…](?:[\"'»)\]]*)\s")


def _last_sentence_end(window: str, min_pos: int) -> Optional[int]:
    cut = None
    for match in SENTENCE_END_RE.finditer(window):
        if match.end() > min_pos:
            cut = match.end()
    return cut


def _find_cut(window: str) -> int:
    """Offset (exclusive) at which the window should be cut."""
    midpoint = len(window) // 2

    pos = window.rfind(PARAGRAPH_BREAK)
    if pos != -1 and pos + len(PARAGRAPH_BREAK) > midpoint:
        return pos + len(PARAGRAPH_BREAK)

    sentence_cut = _last_sentence_end(window, midpoint)
    if sentence_cut is not None:
        return sentence_cut

    pos = window.rfind("\n")
    if pos != -1 and pos + 1 > midpoint:
        return pos + 1

    return len(window)


def split_text(text: str, max_chunk_size: int, overlap: int = 0) -> List[str]:
    """
    Split text into chunks of at most max_chunk_size characters.

    Consecutive chunks share exactly `overlap` characters. Text that fits
    in one chunk is returned unchanged as a single-element list.
    """
    if max_chunk_size <= 0:
        raise ValueError("max_chunk_size must be positive")
    if overlap < 0 or overlap * 2 >= max_chunk_size:
        raise ValueError("overlap must be non-negative and smaller than half of max_chunk_size")

    if len(text) <= max_chunk_size:
        return [text]

    chunks: List[str] = []
    start = 0
    while True:
        end = start + max_chunk_size
        if end >= len(text):
            chunks.append(text[start:])
            break
        cut = start + _find_cut(text[start:end])
        chunks.append(text[start:cut])
        start = cut - overlap
    return chunks
