"""
Shape checks and timestamp handling for incoming import records.

Shared by the reconciler (first problem skips the record) and by
`validate_dataset` (every problem is reported).
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

from core import errors

NAME_MAX_CHARS = 255
ICON_MAX_CHARS = 100
TITLE_MAX_CHARS = 500
TAG_MAX_CHARS = 100
LANGUAGE_MAX_CHARS = 10
COLOR_MAX = 0xFFFFFFFF


def _is_int(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def category_problems(record: Any) -> list[str]:
    if not isinstance(record, dict):
        return ["record must be an object"]

    problems: list[str] = []
    name = record.get("name")
    if not name or not isinstance(name, str):
        problems.append("missing or invalid name")
    elif len(name) > NAME_MAX_CHARS:
        problems.append(f"name too long (max {NAME_MAX_CHARS} characters)")

    icon = record.get("icon")
    if icon is not None and (not isinstance(icon, str) or len(icon) > ICON_MAX_CHARS):
        problems.append(f"icon must be a string of at most {ICON_MAX_CHARS} characters")

    color = record.get("color")
    if color is not None and (not _is_int(color) or not 0 <= color <= COLOR_MAX):
        problems.append(f"color must be an integer between 0 and {COLOR_MAX}")
    return problems


def prompt_problems(record: Any) -> list[str]:
    if not isinstance(record, dict):
        return ["record must be an object"]

    problems: list[str] = []
    title = record.get("title")
    if not title or not isinstance(title, str):
        problems.append("missing or invalid title")
    elif len(title) > TITLE_MAX_CHARS:
        problems.append(f"title too long (max {TITLE_MAX_CHARS} characters)")

    body = record.get("body")
    if not body or not isinstance(body, str):
        problems.append("missing or invalid body")

    tags = record.get("tags")
    if tags is not None:
        if not isinstance(tags, list):
            problems.append("tags must be an array")
        elif any(not isinstance(t, str) or not t.strip() or len(t.strip()) > TAG_MAX_CHARS for t in tags):
            problems.append(f"each tag must be a string of 1-{TAG_MAX_CHARS} characters")

    language = record.get("language")
    if language is not None and (not isinstance(language, str) or len(language) > LANGUAGE_MAX_CHARS):
        problems.append(f"language must be a string of at most {LANGUAGE_MAX_CHARS} characters")

    category_id = record.get("categoryId")
    if category_id is not None and not isinstance(category_id, (str, int)):
        problems.append("categoryId must be a string")
    return problems


def parse_timestamp(value: Any) -> datetime | None:
    """
    Incoming `updatedAt`: ISO-8601 string, epoch milliseconds, or absent.

    Naive values are taken as UTC. Anything unreadable raises
    RecordRejectedError so the record is skipped rather than guessed at.
    """
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=timezone.utc)
    if _is_int(value) or isinstance(value, float):
        try:
            return datetime.fromtimestamp(value / 1000.0, tz=timezone.utc)
        except (OverflowError, OSError, ValueError) as exc:
            raise errors.RecordRejectedError(f"invalid updatedAt {value!r}") from exc
    if isinstance(value, str):
        raw = value.strip()
        if raw.endswith(("Z", "z")):
            raw = raw[:-1] + "+00:00"
        try:
            parsed = datetime.fromisoformat(raw)
        except ValueError as exc:
            raise errors.RecordRejectedError(f"invalid updatedAt {value!r}") from exc
        return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)
    raise errors.RecordRejectedError(f"invalid updatedAt {value!r}")


def compare_timestamps(incoming: datetime, stored: datetime) -> int:
    """
    Tri-state order: 1 when incoming is newer, 0 when equal, -1 when older.
    """
    if stored.tzinfo is None:
        stored = stored.replace(tzinfo=timezone.utc)
    return (incoming > stored) - (incoming < stored)


def should_apply(incoming: datetime | None, stored: datetime | None) -> bool:
    """
    Last-write-wins with ties going to the store. A missing timestamp on
    either side lets the incoming record through.
    """
    if incoming is None or stored is None:
        return True
    return compare_timestamps(incoming, stored) > 0
