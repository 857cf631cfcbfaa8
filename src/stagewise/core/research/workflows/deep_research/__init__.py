"""Deep research workflow package.

Re-exports the driver and its collaborators:
    from stagewise.core.research.workflows.deep_research import DeepResearchWorkflow
"""

from stagewise.core.research.workflows.deep_research.cancellation import CancellationToken
from stagewise.core.research.workflows.deep_research.core import (
    DeepResearchWorkflow,
    StepOutcome,
)
from stagewise.core.research.workflows.deep_research.events import (
    CallbackEventSink,
    EventSink,
    JsonLinesEventSink,
    MemoryEventSink,
)
from stagewise.core.research.workflows.deep_research.progress import (
    ProgressEstimate,
    estimate_progress,
)
from stagewise.core.research.workflows.deep_research.routing import (
    Action,
    RouteDecision,
    route,
)

__all__ = [
    "Action",
    "CallbackEventSink",
    "CancellationToken",
    "DeepResearchWorkflow",
    "EventSink",
    "JsonLinesEventSink",
    "MemoryEventSink",
    "ProgressEstimate",
    "RouteDecision",
    "StepOutcome",
    "estimate_progress",
    "route",
]
