"""
boundary/classification.py - Best-effort fault classification

Module 4: Boundary Controller

Used only when the caller does not supply a classification. Callers that
depend on a precise classification must pass it explicitly.
"""

from __future__ import annotations

from typing import Any, Optional

from bulwark.core.enums import ErrorClassification, FaultChannel
from bulwark.core.exceptions import PipelineError


CHANNEL_CLASSIFICATIONS = {
    FaultChannel.ASYNC: ErrorClassification.ASYNC_FAULT,
    FaultChannel.BUILD: ErrorClassification.BUILD,
    FaultChannel.RENDER: ErrorClassification.RENDERING,
    FaultChannel.STATE: ErrorClassification.STATE,
}

STAGE_CLASSIFICATIONS = {
    "build": ErrorClassification.BUILD,
    "render": ErrorClassification.RENDERING,
    "rendering": ErrorClassification.RENDERING,
    "state": ErrorClassification.STATE,
}

# Checked in order against pipeline fault messages
MESSAGE_KEYWORDS = (
    ("build", ErrorClassification.BUILD),
    ("render", ErrorClassification.RENDERING),
    ("state", ErrorClassification.STATE),
)


def infer_classification(
    fault: Any,
    channel: Optional[FaultChannel] = None,
) -> ErrorClassification:
    """
    Infer where a fault originated.

    Order: the channel it arrived on, then a pipeline fault's stage, then
    keywords in a pipeline fault's message. Anything else is RUNTIME.
    """
    if channel in CHANNEL_CLASSIFICATIONS:
        return CHANNEL_CLASSIFICATIONS[channel]

    if isinstance(fault, PipelineError):
        if fault.stage:
            stage = STAGE_CLASSIFICATIONS.get(fault.stage.lower())
            if stage is not None:
                return stage

        message = fault.message.lower()
        for keyword, classification in MESSAGE_KEYWORDS:
            if keyword in message:
                return classification

    return ErrorClassification.RUNTIME
