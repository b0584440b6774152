"""Photo processing-status state machine.

``pending -> processing -> completed | failed``. Every change is a single
guarded ``UPDATE`` keyed by photo id, so a row that was deleted, or that
already reached a terminal state, is never modified.
"""

from __future__ import annotations

import time
from enum import Enum
from pathlib import Path
from typing import Any, Final

from sqlalchemy import update
from sqlalchemy.orm import Session

from gallery_studio.db import Photo
from gallery_studio.errors import InvalidTransitionError
from gallery_studio.pipeline import ProcessedImage
from gallery_studio.storage import relative_to_root
from utils.logging import get_logger

LOGGER = get_logger(__name__, extra={"component": "status"})

_ERROR_MESSAGE_LIMIT: Final[int] = 2000


class ProcessingStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


_TRANSITIONS: Final[dict[ProcessingStatus, frozenset[ProcessingStatus]]] = {
    ProcessingStatus.PENDING: frozenset({ProcessingStatus.PROCESSING}),
    ProcessingStatus.PROCESSING: frozenset({ProcessingStatus.COMPLETED, ProcessingStatus.FAILED}),
    ProcessingStatus.COMPLETED: frozenset(),
    ProcessingStatus.FAILED: frozenset(),
}


def is_terminal(status: ProcessingStatus | str) -> bool:
    return not _TRANSITIONS[ProcessingStatus(status)]


def can_transition(current: ProcessingStatus | str, target: ProcessingStatus | str) -> bool:
    return ProcessingStatus(target) in _TRANSITIONS[ProcessingStatus(current)]


def allowed_sources(target: ProcessingStatus | str) -> frozenset[ProcessingStatus]:
    """States from which ``target`` may be entered."""

    target = ProcessingStatus(target)
    return frozenset(state for state, targets in _TRANSITIONS.items() if target in targets)


def transition(session: Session, photo_id: str, target: ProcessingStatus | str, **values: Any) -> bool:
    """Move one photo into ``target``, writing ``values`` in the same statement.

    Returns ``False`` when no row changed: the photo no longer exists or its
    current state does not lead to ``target``. Raises
    :class:`InvalidTransitionError` for targets no state leads to (``pending``).
    """

    target = ProcessingStatus(target)
    sources = allowed_sources(target)
    if not sources:
        raise InvalidTransitionError(f"No state transitions into {target.value!r}")

    stmt = (
        update(Photo)
        .where(Photo.id == photo_id, Photo.processing_status.in_([state.value for state in sources]))
        .values(processing_status=target.value, updated_at=time.time(), **values)
        .execution_options(synchronize_session=False)
    )
    result = session.execute(stmt)
    session.commit()

    changed = result.rowcount == 1
    if changed:
        LOGGER.info("photo_status_transition", extra={"photo_id": photo_id, "status": target.value})
    else:
        LOGGER.warning(
            "photo_status_transition_skipped",
            extra={"photo_id": photo_id, "status": target.value, "allowed_from": sorted(s.value for s in sources)},
        )
    return changed


def mark_processing(session: Session, photo_id: str) -> bool:
    return transition(session, photo_id, ProcessingStatus.PROCESSING)


def mark_completed(session: Session, photo_id: str, processed: ProcessedImage, storage_root: Path) -> bool:
    """Persist the original tier's metadata and enter ``completed`` atomically."""

    return transition(
        session,
        photo_id,
        ProcessingStatus.COMPLETED,
        filename=processed.filename,
        file_path=relative_to_root(storage_root, processed.sizes.original),
        width=processed.width,
        height=processed.height,
        file_size=processed.file_size,
        mime_type=processed.mime_type,
        error_message=None,
    )


def mark_failed(session: Session, photo_id: str, error: str | BaseException) -> bool:
    message = str(error) or type(error).__name__
    return transition(
        session,
        photo_id,
        ProcessingStatus.FAILED,
        error_message=message[:_ERROR_MESSAGE_LIMIT],
    )


__all__ = [
    "ProcessingStatus",
    "allowed_sources",
    "can_transition",
    "is_terminal",
    "mark_completed",
    "mark_failed",
    "mark_processing",
    "transition",
]
