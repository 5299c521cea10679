"""
Content fingerprinting for change detection.

The hash is computed over tag-stripped, whitespace-normalized text so
cosmetic markup changes never look like content changes.
"""

import hashlib


def compute_content_hash(text: str) -> str:
    """SHA-256 hex digest of normalized text."""
    return hashlib.sha256((text or "").encode("utf-8")).hexdigest()


def short_hash(value: str, length: int = 16) -> str:
    """Abbreviated hash for log lines."""
    return f"{value[:length]}..." if value else ""
