"""Session records. The read/write facade lives in :mod:`lanes_core.session.service`."""

from .models import (
    SessionData,
    SessionStatus,
    SessionStatusRecord,
    WorkflowStatusSummary,
    is_valid_session_id,
)

__all__ = [
    "SessionData",
    "SessionStatus",
    "SessionStatusRecord",
    "WorkflowStatusSummary",
    "is_valid_session_id",
]
