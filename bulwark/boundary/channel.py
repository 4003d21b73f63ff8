"""
boundary/channel.py - Async fault channel

Module 5: Async Fault Channel

Faults raised outside the producer's synchronous path (detached tasks,
futures nobody awaited) reach the controller through this channel.

Two mechanisms:
- AsyncFaultChannel.spawn(): tasks started inside a boundary scope have
  their unhandled failure funneled to the owning controller.
- LoopFaultHandlerChain: one chain per event loop, installed as the loop's
  exception handler. Boundaries push sinks onto it; a fault no sink claims
  goes to the handler that was installed before the chain (or the loop
  default). The previous handler is restored when the last sink leaves.

INVARIANT: A boundary never permanently displaces host-level fault handling
for faults that are not its own.
"""

from __future__ import annotations

from typing import Any, Callable, Coroutine, Dict, List, Optional
import asyncio
import logging
import weakref


logger = logging.getLogger("boundary.channel")

ExceptionContext = Dict[str, Any]
LoopExceptionHandler = Callable[[asyncio.AbstractEventLoop, ExceptionContext], None]

# Returns True when the sink took ownership of the fault
FaultSink = Callable[[ExceptionContext], bool]

# Receives faults claimed by a channel
FaultDelivery = Callable[[BaseException], Any]


class LoopFaultHandlerChain:
    """
    Chain of fault sinks for a single event loop.

    Sinks are offered a fault most-recent first. Use for_loop() rather than
    constructing chains directly so every boundary on a loop shares one.
    """

    _chains: "weakref.WeakKeyDictionary[asyncio.AbstractEventLoop, LoopFaultHandlerChain]" = (
        weakref.WeakKeyDictionary()
    )

    def __init__(self, loop: asyncio.AbstractEventLoop):
        self._loop = loop
        self._sinks: List[FaultSink] = []
        self._previous: Optional[LoopExceptionHandler] = None
        self._installed = False

    @classmethod
    def for_loop(cls, loop: asyncio.AbstractEventLoop) -> "LoopFaultHandlerChain":
        """Get the chain for a loop, creating it if needed."""
        chain = cls._chains.get(loop)
        if chain is None:
            chain = cls(loop)
            cls._chains[loop] = chain
        return chain

    @property
    def sink_count(self) -> int:
        return len(self._sinks)

    @property
    def is_installed(self) -> bool:
        return self._installed

    def push(self, sink: FaultSink) -> None:
        """Add a sink, installing the chain on first use."""
        if not self._installed:
            self._previous = self._loop.get_exception_handler()
            self._loop.set_exception_handler(self._handle)
            self._installed = True
            logger.debug("Fault handler chain installed")

        self._sinks.append(sink)

    def remove(self, sink: FaultSink) -> bool:
        """
        Remove a sink. Restores the previous handler when none remain.

        Returns:
            True if the sink was registered
        """
        try:
            self._sinks.remove(sink)
        except ValueError:
            return False

        if not self._sinks:
            self._uninstall()
        return True

    def _uninstall(self) -> None:
        if not self._installed:
            return

        if self._loop.get_exception_handler() == self._handle:
            self._loop.set_exception_handler(self._previous)
            logger.debug("Fault handler chain removed, previous handler restored")
        else:
            # Someone installed a handler on top of ours; leave theirs in place
            logger.warning("Loop exception handler changed while chain was installed")

        self._installed = False
        self._previous = None
        self._chains.pop(self._loop, None)

    def _handle(self, loop: asyncio.AbstractEventLoop, context: ExceptionContext) -> None:
        for sink in reversed(list(self._sinks)):
            try:
                if sink(context):
                    return
            except Exception as e:
                # Claimed but escalated: hand the escalated fault outward
                escalated = dict(context)
                escalated["exception"] = e
                escalated["message"] = f"Fault escalated from boundary: {e}"
                self._forward(loop, escalated)
                return

        self._forward(loop, context)

    def _forward(self, loop: asyncio.AbstractEventLoop, context: ExceptionContext) -> None:
        if self._previous is not None:
            self._previous(loop, context)
        else:
            loop.default_exception_handler(context)


class AsyncFaultChannel:
    """
    Per-boundary fault channel.

    Usage:
        channel = AsyncFaultChannel(deliver=controller_sink)
        channel.attach()
        channel.spawn(fetch_prices())   # failure reaches controller_sink
        channel.detach()
    """

    def __init__(self, deliver: FaultDelivery, name: str = ""):
        self._deliver = deliver
        self.name = name
        self._owned: "weakref.WeakSet[asyncio.Future]" = weakref.WeakSet()
        self._chain: Optional[LoopFaultHandlerChain] = None
        self._loop: Optional[asyncio.AbstractEventLoop] = None

    @property
    def is_attached(self) -> bool:
        return self._chain is not None

    @property
    def pending_tasks(self) -> List[asyncio.Future]:
        return [f for f in self._owned if not f.done()]

    def attach(self, loop: Optional[asyncio.AbstractEventLoop] = None) -> bool:
        """
        Install this channel's sink on the loop's handler chain.

        Returns:
            False if already attached
        """
        if self._chain is not None:
            return False

        self._loop = loop or asyncio.get_running_loop()
        self._chain = LoopFaultHandlerChain.for_loop(self._loop)
        self._chain.push(self._claim)
        logger.debug(f"Channel {self.name!r} attached")
        return True

    def detach(self) -> bool:
        """Remove this channel's sink. Returns False if not attached."""
        if self._chain is None:
            return False

        self._chain.remove(self._claim)
        self._chain = None
        logger.debug(f"Channel {self.name!r} detached")
        return True

    def spawn(
        self,
        coro: Coroutine[Any, Any, Any],
        name: Optional[str] = None,
    ) -> asyncio.Task:
        """Start a task inside the boundary scope."""
        loop = self._loop or asyncio.get_running_loop()
        task = loop.create_task(coro, name=name)
        self.adopt(task)
        return task

    def adopt(self, future: asyncio.Future) -> None:
        """Route an existing task or future's unhandled failure to this channel."""
        self._owned.add(future)
        future.add_done_callback(self._on_done)

    def cancel_all(self) -> int:
        """Cancel owned tasks still running. Returns how many were cancelled."""
        cancelled = 0
        for future in list(self._owned):
            if not future.done():
                future.cancel()
                cancelled += 1
        return cancelled

    def _on_done(self, future: asyncio.Future) -> None:
        self._owned.discard(future)
        if future.cancelled():
            return

        fault = future.exception()
        if fault is not None:
            logger.debug(f"Channel {self.name!r} received {type(fault).__name__}")
            self._deliver(fault)

    def _claim(self, context: ExceptionContext) -> bool:
        future = context.get("future") or context.get("task")
        fault = context.get("exception")
        if future is None or fault is None or future not in self._owned:
            return False

        self._owned.discard(future)
        self._deliver(fault)
        return True
