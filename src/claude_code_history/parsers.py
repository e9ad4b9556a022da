# ABOUTME: Record parsing utilities for Claude Code transcripts.
# ABOUTME: Decodes timestamps and the historical shapes of message content.

from __future__ import annotations

import json
import re
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any

MESSAGE_ROLES = ("user", "assistant")

# Transcripts always write millisecond precision and a literal "Z".
_TIMESTAMP_PATTERN = re.compile(r"\d{4}-\d{2}-\d{2}T\d{2}:\d{2}:\d{2}\.\d{3}Z")
_TIMESTAMP_FORMAT = "%Y-%m-%dT%H:%M:%S.%fZ"


@dataclass
class Message:
    """A single user or assistant message kept for detail display."""

    role: str
    content: str
    timestamp: datetime | None = None


def parse_line(line: str) -> dict[str, Any] | None:
    """Decode one JSONL line, returning None for blank or malformed lines."""
    line = line.strip()
    if not line:
        return None
    try:
        payload = json.loads(line)
    except json.JSONDecodeError:
        return None
    if not isinstance(payload, dict):
        return None
    return payload


def parse_timestamp(value: Any) -> datetime | None:
    """Parse the exact ``YYYY-MM-DDTHH:MM:SS.fffZ`` transcript format.

    Generic ISO-8601 variants (offsets, other precisions) are rejected so that
    every accepted value compares on the same footing.
    """
    if not isinstance(value, str) or not _TIMESTAMP_PATTERN.fullmatch(value):
        return None
    try:
        parsed = datetime.strptime(value, _TIMESTAMP_FORMAT)
    except ValueError:
        return None
    return parsed.replace(tzinfo=timezone.utc)


def extract_content(raw: dict[str, Any]) -> str | None:
    """Extract message text, trying each known record shape in order."""
    for extractor in _CONTENT_EXTRACTORS:
        content = extractor(raw)
        if content is not None:
            return content
    return None


def _flat_content(raw: dict[str, Any]) -> str | None:
    content = raw.get("content")
    return content if isinstance(content, str) else None


def _content_object_text(raw: dict[str, Any]) -> str | None:
    content = raw.get("content")
    if isinstance(content, dict):
        text = content.get("text")
        if isinstance(text, str):
            return text
    return None


def _nested_message_content(raw: dict[str, Any]) -> str | None:
    message = raw.get("message")
    if isinstance(message, dict):
        content = message.get("content")
        if isinstance(content, str):
            return content
    return None


def _nested_content_blocks(raw: dict[str, Any]) -> str | None:
    message = raw.get("message")
    if not isinstance(message, dict):
        return None
    blocks = message.get("content")
    if not isinstance(blocks, list):
        return None

    texts: list[str] = []
    for block in blocks:
        if not isinstance(block, dict):
            continue
        text = block.get("text")
        if isinstance(text, str):
            texts.append(text)
        elif block.get("type") == "thinking" and isinstance(block.get("thinking"), str):
            texts.append(f"[Thinking: {block['thinking']}]")

    if not texts:
        return None
    return "\n".join(texts)


_CONTENT_EXTRACTORS = (
    _flat_content,
    _content_object_text,
    _nested_message_content,
    _nested_content_blocks,
)


def parse_message(raw: dict[str, Any]) -> tuple[Message | None, datetime | None]:
    """Parse a user/assistant record.

    Returns the message (None when no content shape matched) and its parsed
    timestamp. Records of any other type yield ``(None, None)``.
    """
    role = raw.get("type")
    if role not in MESSAGE_ROLES:
        return None, None

    timestamp = parse_timestamp(raw.get("timestamp"))
    content = extract_content(raw)
    if content is None:
        return None, timestamp
    return Message(role=role, content=content, timestamp=timestamp), timestamp
