"""Prompt templates shipped with the package."""

import json
import logging
from functools import lru_cache
from pathlib import Path
from typing import Any, Dict, Optional

logger = logging.getLogger(__name__)

PROMPTS_DIR = Path(__file__).parent
PARSER_PROMPT_NAME = "university_parser"


@lru_cache(maxsize=None)
def load_prompt(name: str) -> str:
    path = PROMPTS_DIR / f"{name}.md"
    if not path.exists():
        raise FileNotFoundError(f'Prompt "{name}" not found at {path}')
    content = path.read_text(encoding="utf-8")
    logger.debug("Prompt loaded: %s (%d chars)", name, len(content))
    return content


def build_parser_prompt(content: str, source_url: str, prior: Optional[Dict[str, Any]] = None) -> str:
    """
    Full extraction prompt for one chunk of website text.

    When a previously known record is given it is embedded as context so the
    backend keeps what is already known and only adds or corrects fields.
    """
    base = load_prompt(PARSER_PROMPT_NAME)
    known = ""
    if prior:
        context = {key: value for key, value in prior.items() if key != "metadata"}
        known = (
            "\n\n---\nPREVIOUSLY KNOWN DATA (keep unless the content below contradicts it):\n"
            f"{json.dumps(context, ensure_ascii=False)}"
        )

    return (
        f"{base}{known}\n\n"
        "---\n"
        f"SOURCE URL: {source_url}\n"
        "WEBSITE CONTENT TO PARSE:\n"
        "---\n\n"
        f"{content}\n\n"
        "---\n"
        "END OF WEBSITE CONTENT\n\n"
        "Return ONLY valid JSON based on the content above:"
    )
