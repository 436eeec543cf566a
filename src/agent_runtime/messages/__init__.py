"""Message canonicalization."""

from .canonicalizer import (
    canonicalize_message,
    canonicalize_messages,
    extract_content,
    get_message_text,
    parse_arguments,
    parse_timestamp,
)

__all__ = [
    "canonicalize_message",
    "canonicalize_messages",
    "extract_content",
    "get_message_text",
    "parse_arguments",
    "parse_timestamp",
]
