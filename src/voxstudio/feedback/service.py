"""Loading and submitting voice feedback reports."""

import logging
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, Optional

from voxstudio.core.exceptions import NotFoundError, UploadValidationError
from voxstudio.feedback.report import (
    FeedbackItem,
    format_report,
    parse_report,
    report_file_name,
    select_latest_report,
)
from voxstudio.storage.base import DocumentStore
from voxstudio.storage.factory import get_document_store
from voxstudio.upload.models import ConflictPolicy, validate_segment
from voxstudio.upload.service import upload_file

logger = logging.getLogger(__name__)

FEEDBACK_STAGE = "stage3"
FEEDBACK_CATEGORY = "feedback"


def feedback_folder(project_name: str) -> tuple[str, str, str]:
    return (validate_segment(project_name), FEEDBACK_STAGE, FEEDBACK_CATEGORY)


async def load_latest_feedback(
    project_name: str,
    voice_title: Optional[str] = None,
    store: Optional[DocumentStore] = None,
) -> list[FeedbackItem]:
    """Parse the most recent report for a project (and voice, if given).

    A project without a feedback folder or without matching reports has no
    feedback.
    """
    store = store or get_document_store()
    folder = "/".join(feedback_folder(project_name))

    try:
        children = await store.list_children(folder)
    except NotFoundError:
        return []

    latest = select_latest_report(
        (item.name for item in children if not item.is_folder), voice_title=voice_title
    )
    if latest is None:
        return []

    content = await store.read_file(f"{folder}/{latest}")
    items = parse_report(content.decode("utf-8", errors="replace"))
    logger.info(
        "Feedback loaded",
        extra={"project_name": project_name, "report": latest, "comments": len(items)},
    )
    return items


async def submit_feedback(
    project_name: str,
    voice_title: str,
    items: Iterable[FeedbackItem],
    store: Optional[DocumentStore] = None,
    when: Optional[datetime] = None,
) -> Dict[str, Any]:
    """Write a new report into ``{project}/stage3/feedback``.

    Each submission creates a new file; earlier reports are kept.
    """
    items = list(items)
    if not items:
        raise UploadValidationError("At least one feedback comment is required")
    if not voice_title or not voice_title.strip():
        raise UploadValidationError("voice_title is required")

    when = when or datetime.now(timezone.utc)
    content = format_report(project_name, voice_title, items, generated_at=when).encode("utf-8")
    file_name = report_file_name(project_name, voice_title, when).replace("/", "_").replace("\\", "_")

    result = await upload_file(
        feedback_folder(project_name),
        file_name,
        content,
        len(content),
        conflict_policy=ConflictPolicy.RENAME,
        store=store,
    )
    return {"file_name": result.get("name") or file_name, "comments": len(items)}
