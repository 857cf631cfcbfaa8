"""Phase mixins for DeepResearchWorkflow.

Each mixin contributes a disjoint set of methods implementing one workflow phase.
They are combined via multiple inheritance in the main DeepResearchWorkflow class.
"""

from ._lifecycle import GenerationLifecycleMixin
from .node_research import NodeResearchMixin
from .reasoning import ReasoningPhaseMixin
from .reporting import ReportingPhaseMixin
from .staging import StagingPhaseMixin

__all__ = [
    "GenerationLifecycleMixin",
    "NodeResearchMixin",
    "ReasoningPhaseMixin",
    "ReportingPhaseMixin",
    "StagingPhaseMixin",
]
