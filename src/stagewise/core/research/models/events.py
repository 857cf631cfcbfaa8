"""Progress event models published to the event stream.

Events serialize to one JSON object per line with camelCase keys; optional
fields are omitted when unset.
"""

from datetime import datetime, timezone
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from stagewise.core.research.models.enums import EventType


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class ProgressInfo(_CamelModel):
    percent: int = Field(..., ge=0, le=100)
    current_step: str


class TreeStats(_CamelModel):
    node_count: int = 0
    max_depth: int = 0
    nodes_with_findings: int = 0


class ProgressEvent(_CamelModel):
    """A single update for the consumer of a research session."""

    event_type: EventType = EventType.PROGRESS
    message: str
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    session_id: Optional[str] = None
    stage: Optional[str] = None
    agent: Optional[str] = None
    progress: Optional[ProgressInfo] = None
    tree: Optional[TreeStats] = None
    analysis: Optional[str] = None
    stages: Optional[list[dict[str, Any]]] = None
    completed: Optional[bool] = None

    def to_json_line(self) -> str:
        return self.model_dump_json(by_alias=True, exclude_none=True)
