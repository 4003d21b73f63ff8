"""
boundary/ - Error boundary control core

The controller state machine, its async fault channel, classification
heuristics, transition events, and the producer host.
"""

from .classification import (
    infer_classification,
)

from .events import (
    BoundaryEvent,
    BoundaryState,
    EventHandler,
)

from .channel import (
    AsyncFaultChannel,
    LoopFaultHandlerChain,
)

from .controller import (
    BoundaryController,
    ErrorCallback,
    EscalationPredicate,
)

from .host import (
    ProducerHost,
)

__all__ = [
    # Classification
    "infer_classification",
    # Events
    "BoundaryEvent",
    "BoundaryState",
    "EventHandler",
    # Channel
    "AsyncFaultChannel",
    "LoopFaultHandlerChain",
    # Controller
    "BoundaryController",
    "ErrorCallback",
    "EscalationPredicate",
    # Host
    "ProducerHost",
]
