"""
Store lifecycle types and Pydantic models for API request/response validation.
"""
from collections import deque
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel

from config import settings


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def format_ts(ts: datetime) -> str:
    return ts.strftime("%Y-%m-%dT%H:%M:%SZ")


class StoreState(str, Enum):
    PROVISIONING = "Provisioning"
    READY = "Ready"
    FAILED = "Failed"
    DELETING = "Deleting"


# Removal out of DELETING is not a state; the registry drops the record.
ALLOWED_TRANSITIONS: dict[StoreState, frozenset[StoreState]] = {
    StoreState.PROVISIONING: frozenset(
        {StoreState.READY, StoreState.FAILED, StoreState.DELETING}
    ),
    StoreState.READY: frozenset({StoreState.DELETING}),
    StoreState.FAILED: frozenset({StoreState.DELETING}),
    StoreState.DELETING: frozenset(),
}


def can_transition(current: StoreState, target: StoreState) -> bool:
    return target in ALLOWED_TRANSITIONS[current]


@dataclass
class StoreRecord:
    """Tracked state of one store. Owned by the StoreRegistry."""

    id: str
    endpoint: str
    state: StoreState = StoreState.PROVISIONING
    message: str = ""
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)
    activity: deque = field(
        default_factory=lambda: deque(maxlen=settings.ACTIVITY_LOG_MAX)
    )

    def add_activity(self, event: str, message: str) -> None:
        self.activity.append({
            "timestamp": format_ts(utcnow()),
            "event": event,
            "message": message,
        })

    def snapshot(self) -> "StoreRecord":
        """Detached copy safe to hand out of the registry."""
        return replace(self, activity=deque(self.activity, maxlen=self.activity.maxlen))

    def to_response(self) -> "StoreResponse":
        return StoreResponse(
            id=self.id,
            state=self.state,
            endpoint=self.endpoint,
            message=self.message,
            createdAt=format_ts(self.created_at),
            updatedAt=format_ts(self.updated_at),
        )


class StoreResponse(BaseModel):
    """Store details returned to the dashboard."""
    id: str
    state: StoreState
    endpoint: str
    message: str = ""
    createdAt: str
    updatedAt: Optional[str] = None


class StoreListResponse(BaseModel):
    stores: List[StoreResponse]
    total: int


class ActivityLogEntry(BaseModel):
    timestamp: str
    event: str
    message: str = ""
    source: str = "registry"


class StoreLogsResponse(BaseModel):
    store: str
    logs: List[ActivityLogEntry]


class DeleteResponse(BaseModel):
    message: str
    status: str
    store: Optional[StoreResponse] = None


class ErrorResponse(BaseModel):
    detail: str
    code: str = "UNKNOWN_ERROR"


class AuditLogEntry(BaseModel):
    timestamp: str
    action: str  # CREATE, DELETE
    store_id: str
    user_id: str = "anonymous"
    result: str  # SUCCESS, FAILED, ...
    detail: str = ""
