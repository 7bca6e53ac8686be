"""Plain-text voice feedback reports.

A report is a fixed header followed by one line per comment::

    Voice Feedback Report
    --------------------
    Project: acme
    Voice: Warm Narrator
    Date: 2025-03-01 14:02:11

    Feedback Comments:
    [0:15] Too fast here (Pending)
    [1:02] Better take (Resolved)
"""

import logging
import re
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Iterable, Optional
from urllib.parse import quote
from uuid import uuid4

logger = logging.getLogger(__name__)

REPORT_TITLE = "Voice Feedback Report"
SECTION_MARKER = "Feedback Comments:"
RESOLVED = "(Resolved)"
PENDING = "(Pending)"
REPORT_PREFIX = "feedback_"

_COMMENT_LINE = re.compile(r"^\[(\d+:\d{2})\]\s*(.+?)\s*(\(Resolved\)|\(Pending\))?$")
_NAME_STAMP = re.compile(r"(\d{4}-\d{2}-\d{2}T\d{2}-\d{2}-\d{2}(?:-\d{3})?Z?)\.txt$")


@dataclass
class FeedbackItem:
    """One timestamped review comment."""

    timestamp_seconds: int
    comment: str
    resolved: bool = False
    id: str = field(default_factory=lambda: uuid4().hex)


def format_timestamp(seconds: float) -> str:
    """Render seconds as ``m:ss``."""
    total = int(seconds)
    return f"{total // 60}:{total % 60:02d}"


def parse_timestamp(value: str) -> int:
    """Parse ``m:ss`` into seconds."""
    minutes, seconds = value.split(":")
    return int(minutes) * 60 + int(seconds)


def format_report(
    project_name: str,
    voice_title: str,
    items: Iterable[FeedbackItem],
    generated_at: Optional[datetime] = None,
) -> str:
    """Render a feedback report with comments sorted by timestamp."""
    generated_at = generated_at or datetime.now(timezone.utc)
    lines = [
        REPORT_TITLE,
        "-" * 20,
        f"Project: {project_name}",
        f"Voice: {voice_title}",
        f"Date: {generated_at.strftime('%Y-%m-%d %H:%M:%S')}",
        "",
        SECTION_MARKER,
    ]
    for item in sorted(items, key=lambda fb: fb.timestamp_seconds):
        status = RESOLVED if item.resolved else PENDING
        # Newlines inside a comment would break the line grammar
        comment = " ".join(item.comment.split())
        lines.append(f"[{format_timestamp(item.timestamp_seconds)}] {comment} {status}")
    return "\n".join(lines) + "\n"


def parse_report(text: str) -> list[FeedbackItem]:
    """Extract comments from a report.

    Only lines after the ``Feedback Comments:`` marker are considered; lines
    that do not match the comment grammar are skipped. A comment without a
    status suffix is treated as pending.
    """
    items: list[FeedbackItem] = []
    in_section = False

    for line in text.splitlines():
        if SECTION_MARKER in line:
            in_section = True
            continue
        if not in_section or not line.strip():
            continue

        match = _COMMENT_LINE.match(line.strip())
        if not match:
            logger.debug("Skipping line outside comment grammar", extra={"line": line})
            continue

        time_str, comment, status = match.groups()
        items.append(
            FeedbackItem(
                timestamp_seconds=parse_timestamp(time_str),
                comment=comment.strip(),
                resolved=status == RESOLVED,
            )
        )

    return items


def report_file_name(project_name: str, voice_title: str, when: Optional[datetime] = None) -> str:
    """Build a unique, sortable report file name."""
    when = when or datetime.now(timezone.utc)
    stamp = when.astimezone(timezone.utc).strftime("%Y-%m-%dT%H-%M-%S-%f")[:-3] + "Z"
    return f"{REPORT_PREFIX}{project_name}_{voice_title}_{stamp}.txt"


def _matches_voice(name: str, voice_title: str) -> bool:
    underscored = re.sub(r"\s+", "_", voice_title)
    spaced = re.sub(r"\s+", " ", voice_title)
    return (
        underscored in name
        or quote(voice_title) in name
        or spaced in name
        or voice_title.lower() in name.lower()
    )


def select_latest_report(names: Iterable[str], voice_title: Optional[str] = None) -> Optional[str]:
    """Pick the most recent report name, optionally for one voice.

    Names end in a sortable timestamp; ties fall back to the full name.
    """
    candidates = [name for name in names if name.startswith(REPORT_PREFIX)]
    if voice_title:
        candidates = [name for name in candidates if _matches_voice(name, voice_title)]
    return max(candidates, key=_report_sort_key) if candidates else None


def _report_sort_key(name: str) -> tuple[str, str]:
    match = _NAME_STAMP.search(name)
    return (match.group(1) if match else "", name)
