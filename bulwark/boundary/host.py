"""
boundary/host.py - Run a producer under a boundary

Module 6: Producer Host

Couples a producer factory to a controller through the generation token:
a retry re-executes the existing producer, a reset builds a new one.
"""

from __future__ import annotations

from typing import Any, Callable, Optional, Set
import asyncio
import inspect
import logging

from bulwark.core.enums import ErrorClassification

from .controller import BoundaryController
from .events import BoundaryEvent


logger = logging.getLogger("boundary.host")

# A producer is a zero-argument callable, sync or async
Producer = Callable[[], Any]
ProducerFactory = Callable[[], Producer]


class ProducerHost:
    """
    Executes a producer and feeds its faults to a controller.

    Usage:
        host = ProducerHost(boundary, factory=lambda: PriceBoard(feed))
        output = await host.run()      # None while faulted
        await host.wait_idle()

    With auto_rerun, the producer runs again after every retry/reset the
    controller performs, so recovery policies can drive it unattended.
    """

    def __init__(
        self,
        controller: BoundaryController,
        factory: ProducerFactory,
        classification: Optional[ErrorClassification] = None,
        auto_rerun: bool = True,
    ):
        self._controller = controller
        self._factory = factory
        self.classification = classification

        self._producer: Optional[Producer] = None
        self._generation: Optional[int] = None
        self._pending: Set[asyncio.Task] = set()
        self._last_output: Any = None

        self.runs = 0
        self.builds = 0

        if auto_rerun:
            controller.subscribe(self._on_event)

    @property
    def controller(self) -> BoundaryController:
        return self._controller

    @property
    def producer(self) -> Optional[Producer]:
        return self._producer

    @property
    def last_output(self) -> Any:
        return self._last_output

    def _ensure_producer(self) -> Producer:
        generation = self._controller.producer_generation
        if self._producer is None or generation != self._generation:
            self._producer = self._factory()
            self._generation = generation
            self.builds += 1
            logger.debug(f"Built producer for generation {generation}")
        return self._producer

    async def run(self) -> Any:
        """
        Execute the producer once.

        Returns:
            The producer's output, or None if the boundary is (or becomes)
            faulted
        """
        if self._controller.is_disposed or self._controller.has_error:
            return None

        self.runs += 1

        try:
            producer = self._ensure_producer()
        except Exception as e:
            self._controller.capture_fault(e, classification=ErrorClassification.BUILD)
            return None

        try:
            output = producer()
            if inspect.isawaitable(output):
                output = await output
        except Exception as e:
            self._controller.capture_fault(e, classification=self.classification)
            return None

        self._last_output = output
        return output

    def _on_event(self, event: BoundaryEvent, controller: BoundaryController) -> None:
        if event not in (BoundaryEvent.RETRIED, BoundaryEvent.RESET):
            return

        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.warning("No running event loop; producer not re-run")
            return

        task = loop.create_task(self.run())
        self._pending.add(task)
        task.add_done_callback(self._on_rerun_done)

    def _on_rerun_done(self, task: asyncio.Task) -> None:
        self._pending.discard(task)
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            # Escalated out of the boundary
            logger.error(f"Producer re-run escalated {type(error).__name__}: {error}")

    async def wait_idle(self) -> None:
        """Wait for the controller and any scheduled re-runs to settle."""
        while True:
            await self._controller.wait_idle()
            pending = [t for t in self._pending if not t.done()]
            if not pending:
                if self._controller_idle():
                    return
                continue
            await asyncio.gather(*pending, return_exceptions=True)

    def _controller_idle(self) -> bool:
        return not self._controller.recovery_in_progress
