"""Shared enums for research models."""

from enum import Enum


class SessionStatus(str, Enum):
    """Lifecycle status of a research session."""

    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


class EventType(str, Enum):
    """Kinds of progress events published to the event stream."""

    PROGRESS = "progress"
    COMPLETE = "complete"
    ERROR = "error"


class AgentRole(str, Enum):
    """Component named in a progress event's ``agent`` field."""

    STAGING = "staging"
    REASONING = "reasoning"
    REPORTING = "reporting"
