# backend/modules/reviews/services/text_sanitizer.py

import logging
import re
from typing import Any, Callable, Optional

logger = logging.getLogger(__name__)

GUEST_NAME_MAX_LENGTH = 255
COMMENT_MAX_LENGTH = 5000
DEFAULT_GUEST_NAME = "Anonymous Guest"

# C0 controls except tab/newline/carriage return, plus DEL and C1 controls
_CONTROL_CHARS = re.compile(r"[\x00-\x08\x0b\x0c\x0e-\x1f\x7f-\x9f]")
_WHITESPACE_RUN = re.compile(r"\s+")
_EXCESS_NEWLINES = re.compile(r"\n{3,}")


def _clean_guest_name(value: str, max_length: int) -> str:
    value = _CONTROL_CHARS.sub("", value)
    value = _WHITESPACE_RUN.sub(" ", value).strip()
    return value[:max_length].rstrip()


def _clean_comment(value: str, max_length: int) -> str:
    value = value.replace("\r\n", "\n").replace("\r", "\n")
    value = _CONTROL_CHARS.sub("", value)
    value = _EXCESS_NEWLINES.sub("\n\n", value).strip()
    return value[:max_length].rstrip()


def _sanitize(
    cleaner: Callable[[str, int], str], value: Any, max_length: int
) -> str:
    if value is None:
        return ""
    try:
        return cleaner(value, max_length)
    except (TypeError, AttributeError, ValueError) as e:
        # Unexpected input: fall back to plain truncation
        logger.warning(f"Sanitizer fell back to truncation: {e}")
        return str(value)[:max_length]


def sanitize_guest_name(value: Optional[Any], max_length: int = GUEST_NAME_MAX_LENGTH) -> str:
    name = _sanitize(_clean_guest_name, value, max_length)
    return name or DEFAULT_GUEST_NAME


def sanitize_comment(value: Optional[Any], max_length: int = COMMENT_MAX_LENGTH) -> str:
    return _sanitize(_clean_comment, value, max_length)
