"""Input sanitization for user-supplied resume and job description text."""
import re

MAX_RESUME_TEXT_LENGTH = 50000
MIN_RESUME_TEXT_LENGTH = 100
MAX_JOB_DESCRIPTION_LENGTH = 10000

_HTML_TAG = re.compile(r"<[^>]*>")
_JAVASCRIPT_URI = re.compile(r"javascript:", re.IGNORECASE)
_INLINE_HANDLER = re.compile(r"on\w+\s*=", re.IGNORECASE)
_QUOTES_AND_SEPARATORS = re.compile(r"['\";\\]")
_WHITESPACE = re.compile(r"\s+")

MALICIOUS_PATTERNS = [
    re.compile(r"<script", re.IGNORECASE),
    re.compile(r"javascript:", re.IGNORECASE),
    re.compile(r"on\w+\s*=", re.IGNORECASE),
    re.compile(r"data:text/html", re.IGNORECASE),
    re.compile(r"vbscript:", re.IGNORECASE),
    re.compile(r"expression\s*\(", re.IGNORECASE),
]


def sanitize_text(text: str) -> str:
    text = _HTML_TAG.sub("", text)
    text = _JAVASCRIPT_URI.sub("", text)
    text = _INLINE_HANDLER.sub("", text)
    text = _QUOTES_AND_SEPARATORS.sub("", text)
    return _WHITESPACE.sub(" ", text).strip()


def contains_malicious_patterns(text: str) -> bool:
    return any(pattern.search(text) for pattern in MALICIOUS_PATTERNS)
