"""
boundary/controller.py - Boundary controller state machine

Module 4: Boundary Controller

Captures faults raised while producing output, reports them, and drives the
active recovery policy.

States:
    Healthy  (current_error is None)
    Faulted  (current_error is set)

Transitions:
    capture_fault  Healthy/Faulted -> Faulted   (last writer wins, recovery untouched)
    retry          Faulted -> Healthy           (attempt_count + 1, same producer)
    reset          -> Healthy                   (attempt_count = 0, new generation)
    dispose        -> disposed                  (all later calls are no-ops)

INVARIANT: All state is mutated on the controller's event loop, by
non-suspending methods. Each call is one serialized transition.
INVARIANT: At most one recovery is in flight. A fault captured while one is
pending only replaces current_error. A recovery that wakes up after a
retry, reset or dispose does nothing.
"""

from __future__ import annotations

from contextlib import contextmanager
from datetime import datetime, timezone
from typing import (
    Any,
    Awaitable,
    Callable,
    Coroutine,
    Dict,
    Iterator,
    List,
    Mapping,
    Optional,
    Sequence,
    Set,
    Union,
    assert_never,
)
import asyncio
import logging

from bulwark.core.enums import ErrorClassification, ErrorSeverity, FaultChannel
from bulwark.core.exceptions import EscalatedFault
from bulwark.core.record import ErrorRecord, format_trace
from bulwark.recovery.planner import RecoveryAction, RecoveryDecision, plan_recovery
from bulwark.recovery.policies import NoRecovery, RecoverFn, RecoveryPolicy
from bulwark.reporters.base import Reporter, ReporterGroup

from .channel import AsyncFaultChannel
from .classification import infer_classification
from .events import BoundaryEvent, BoundaryState, EventHandler


logger = logging.getLogger("boundary.controller")

ErrorCallback = Callable[[ErrorRecord], None]
EscalationPredicate = Callable[[Any], bool]
SeverityResolver = Callable[[Any], ErrorSeverity]
SleepFn = Callable[[float], Awaitable[None]]
Clock = Callable[[], datetime]


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class BoundaryController:
    """
    Error boundary for one re-executable producer.

    Usage:
        boundary = BoundaryController(
            policy=RetryRecovery(max_attempts=3, base_delay=1.0),
            reporters=[LoggingReporter()],
            on_error=lambda record: print(record.message),
        )

        with boundary.guard():
            render_dashboard()

        if boundary.has_error:
            show_fallback(boundary.current_error)
    """

    def __init__(
        self,
        policy: Optional[RecoveryPolicy] = None,
        reporters: Union[Sequence[Reporter], ReporterGroup, None] = None,
        on_error: Optional[ErrorCallback] = None,
        should_escalate: Optional[EscalationPredicate] = None,
        catch_async: bool = True,
        name: str = "boundary",
        default_severity: ErrorSeverity = ErrorSeverity.MEDIUM,
        severity_resolver: Optional[SeverityResolver] = None,
        sleep: SleepFn = asyncio.sleep,
        clock: Clock = _utc_now,
        loop: Optional[asyncio.AbstractEventLoop] = None,
    ):
        """
        Initialize the controller.

        Args:
            policy: Recovery policy (default: NoRecovery)
            reporters: Reporters or a ReporterGroup to fan faults out to
            on_error: Called synchronously with each captured record
            should_escalate: Faults it returns True for are re-raised after
                local handling
            catch_async: Attach to the loop's async fault channel
            name: Identifier used as the record source and in logs
            default_severity: Severity when neither caller nor resolver sets one
            severity_resolver: Optional fault -> severity mapping
            sleep: Awaitable delay used by recovery (injectable for tests)
            clock: Timestamp source for records
            loop: Event loop to bind to (default: the running loop)
        """
        self.name = name
        self._policy: RecoveryPolicy = policy or NoRecovery()
        if isinstance(reporters, ReporterGroup):
            self._reporters = reporters
        else:
            self._reporters = ReporterGroup(reporters or [])
        self._on_error = on_error
        self._should_escalate = should_escalate
        self._catch_async = catch_async
        self._default_severity = default_severity
        self._severity_resolver = severity_resolver
        self._sleep = sleep
        self._clock = clock
        self._loop = loop

        # State
        self._current_error: Optional[ErrorRecord] = None
        self._attempt_count = 0
        self._recovery_in_progress = False
        self._generation = 0
        self._disposed = False

        # Bumped by retry, reset and dispose; recoveries compare against it
        self._epoch = 0

        self._recovery_task: Optional[asyncio.Task] = None
        self._report_tasks: Set[asyncio.Task] = set()
        self._handlers: List[EventHandler] = []

        self._channel = AsyncFaultChannel(self._capture_async, name=name)

        self._stats = {
            "faults_captured": 0,
            "retries": 0,
            "resets": 0,
            "recoveries_started": 0,
            "recoveries_discarded": 0,
            "escalations": 0,
        }

        if catch_async and self._bind_loop() is not None:
            self._channel.attach(self._loop)

        logger.debug(f"BoundaryController {name!r} created with {self._policy}")

    # =========================================================================
    # PROPERTIES
    # =========================================================================

    @property
    def current_error(self) -> Optional[ErrorRecord]:
        """Latest captured record, or None when healthy."""
        return self._current_error

    @property
    def has_error(self) -> bool:
        return self._current_error is not None

    @property
    def attempt_count(self) -> int:
        return self._attempt_count

    @property
    def recovery_in_progress(self) -> bool:
        return self._recovery_in_progress

    @property
    def producer_generation(self) -> int:
        """Token the host compares to decide whether to re-create the producer."""
        return self._generation

    @property
    def is_disposed(self) -> bool:
        return self._disposed

    @property
    def policy(self) -> RecoveryPolicy:
        return self._policy

    @property
    def reporters(self) -> ReporterGroup:
        return self._reporters

    @property
    def channel(self) -> AsyncFaultChannel:
        return self._channel

    @property
    def stats(self) -> Dict[str, int]:
        return dict(self._stats)

    def snapshot(self) -> BoundaryState:
        """Immutable view of the current state."""
        return BoundaryState(
            current_error=self._current_error,
            attempt_count=self._attempt_count,
            recovery_in_progress=self._recovery_in_progress,
            producer_generation=self._generation,
            disposed=self._disposed,
        )

    # =========================================================================
    # LIFECYCLE
    # =========================================================================

    def activate(self, loop: Optional[asyncio.AbstractEventLoop] = None) -> bool:
        """
        Bind to an event loop and attach the async fault channel.

        Only needed when the controller was created outside a running loop.
        """
        if self._disposed:
            return False
        if loop is not None:
            self._loop = loop
        if self._bind_loop() is None:
            return False
        if self._catch_async:
            self._channel.attach(self._loop)
        return True

    def dispose(self) -> bool:
        """
        Tear the boundary down.

        Cancels pending recovery and tasks spawned in the boundary scope,
        and detaches from the async fault channel. Later calls are no-ops.
        """
        if self._disposed:
            return False

        self._disposed = True
        self._epoch += 1
        self._cancel_recovery()
        self._channel.cancel_all()
        self._channel.detach()

        self._emit(BoundaryEvent.DISPOSED)
        self._handlers.clear()
        logger.debug(f"BoundaryController {self.name!r} disposed")
        return True

    async def aclose(self) -> None:
        """Dispose, wait for in-flight reports, then close the reporters."""
        self.dispose()
        if self._report_tasks:
            await asyncio.gather(*self._report_tasks, return_exceptions=True)
        await self._reporters.aclose()

    async def __aenter__(self) -> "BoundaryController":
        self.activate()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.aclose()

    async def wait_idle(self) -> None:
        """Wait until no report or recovery work is outstanding."""
        while True:
            pending = [t for t in self._report_tasks if not t.done()]
            if self._recovery_task is not None and not self._recovery_task.done():
                pending.append(self._recovery_task)
            if not pending:
                return
            await asyncio.gather(*pending, return_exceptions=True)

    # =========================================================================
    # SUBSCRIPTIONS
    # =========================================================================

    def subscribe(self, handler: EventHandler) -> bool:
        """
        Subscribe to transition events.

        Returns:
            False if the handler was already subscribed or the controller is disposed
        """
        if self._disposed or handler in self._handlers:
            return False
        self._handlers.append(handler)
        return True

    def unsubscribe(self, handler: EventHandler) -> bool:
        try:
            self._handlers.remove(handler)
            return True
        except ValueError:
            return False

    def _emit(self, event: BoundaryEvent) -> None:
        for handler in list(self._handlers):
            try:
                handler(event, self)
            except Exception as e:
                logger.error(f"Event handler failed for {event.value}: {e}")

    # =========================================================================
    # FAULT CAPTURE
    # =========================================================================

    def capture_fault(
        self,
        fault: Any,
        trace: Optional[str] = None,
        classification: Optional[ErrorClassification] = None,
        *,
        severity: Optional[ErrorSeverity] = None,
        source: Optional[str] = None,
        context: Optional[Mapping[str, Any]] = None,
        channel: FaultChannel = FaultChannel.SYNC,
    ) -> Optional[ErrorRecord]:
        """
        Contain a fault.

        Builds the record, stores it as current_error, starts reporting,
        calls on_error, and schedules recovery (after reporting finishes)
        unless a recovery is already pending, in which case that recovery
        acts on this record.
        If should_escalate(fault) is True the fault is re-raised once all of
        that has been done.

        Args:
            fault: The error value
            trace: Stack context; derived from the fault when omitted
            classification: Inferred when omitted
            severity: Overrides the resolver/default severity
            source: Overrides the controller name as record source
            context: Extra data stored on the record
            channel: Path the fault arrived on (used for inference)

        Returns:
            The captured record, or None if the controller is disposed
        """
        if self._disposed:
            logger.debug(f"Fault captured after dispose ignored: {fault!r}")
            return None

        if classification is None:
            classification = infer_classification(fault, channel)

        if trace is None:
            trace = format_trace(fault if isinstance(fault, BaseException) else None)

        record = ErrorRecord(
            fault=fault,
            trace=trace,
            severity=severity or self._resolve_severity(fault),
            classification=classification,
            source=source or self.name,
            captured_at=self._clock(),
            context=context or {},
        )

        already_faulted = self._current_error is not None
        self._current_error = record
        self._stats["faults_captured"] += 1

        logger.info(
            f"Boundary {self.name!r} captured {record.fault_type} "
            f"({classification.value}, {record.severity.value})"
            + (" while faulted" if already_faulted else "")
        )

        report_task = self._start_reporting(record)
        self._notify_error(record)
        self._emit(BoundaryEvent.FAULTED)
        self._schedule_recovery(report_task, self._epoch)

        if self._escalates(fault):
            self._stats["escalations"] += 1
            logger.info(f"Boundary {self.name!r} escalating {record.fault_type}")
            if isinstance(fault, BaseException):
                raise fault
            raise EscalatedFault(fault, source=self.name)

        return record

    def trigger_error(self, fault: Any, trace: Optional[str] = None) -> Optional[ErrorRecord]:
        """
        Manually inject a fault.

        Takes the same path as an observed fault, classified UNKNOWN.
        """
        return self.capture_fault(
            fault,
            trace,
            ErrorClassification.UNKNOWN,
            channel=FaultChannel.MANUAL,
        )

    def capture_fault_threadsafe(
        self,
        fault: Any,
        trace: Optional[str] = None,
        classification: Optional[ErrorClassification] = None,
    ) -> None:
        """Capture a fault from a thread other than the controller's loop."""
        if self._disposed:
            return
        if self._loop is None:
            raise RuntimeError(f"Boundary {self.name!r} is not bound to an event loop")
        self._loop.call_soon_threadsafe(self.capture_fault, fault, trace, classification)

    @contextmanager
    def guard(
        self,
        classification: Optional[ErrorClassification] = None,
        source: Optional[str] = None,
    ) -> Iterator["BoundaryController"]:
        """
        Capture any Exception raised inside the block.

        The exception is swallowed unless should_escalate says otherwise.

        Usage:
            with boundary.guard(ErrorClassification.RENDERING):
                template.render(context)
        """
        try:
            yield self
        except Exception as e:
            self.capture_fault(e, classification=classification, source=source)

    def spawn(
        self,
        coro: Coroutine[Any, Any, Any],
        name: Optional[str] = None,
    ) -> asyncio.Task:
        """Start a task whose unhandled failure is captured by this boundary."""
        return self._channel.spawn(coro, name=name)

    def _capture_async(self, fault: BaseException) -> None:
        self.capture_fault(fault, channel=FaultChannel.ASYNC)

    def _resolve_severity(self, fault: Any) -> ErrorSeverity:
        if self._severity_resolver is not None:
            try:
                return self._severity_resolver(fault)
            except Exception as e:
                logger.error(f"Severity resolver failed: {e}")
        return self._default_severity

    def _escalates(self, fault: Any) -> bool:
        if self._should_escalate is None:
            return False
        try:
            return bool(self._should_escalate(fault))
        except Exception as e:
            logger.error(f"should_escalate predicate failed: {e}")
            return False

    def _notify_error(self, record: ErrorRecord) -> None:
        if self._on_error is None:
            return
        try:
            self._on_error(record)
        except Exception as e:
            logger.error(f"on_error callback failed: {e}")

    # =========================================================================
    # REPORTING
    # =========================================================================

    def _start_reporting(self, record: ErrorRecord) -> Optional[asyncio.Task]:
        if not len(self._reporters):
            return None

        loop = self._bind_loop()
        if loop is None:
            logger.warning(f"Boundary {self.name!r} has no event loop; fault not reported")
            return None

        task = loop.create_task(self._report(record))
        self._report_tasks.add(task)
        task.add_done_callback(self._report_tasks.discard)
        return task

    async def _report(self, record: ErrorRecord) -> None:
        try:
            await self._reporters.report(record)
        except Exception as e:
            logger.error(f"Reporting failed for {record.fault_type}: {e}")

    # =========================================================================
    # RECOVERY
    # =========================================================================

    def _schedule_recovery(self, report_task: Optional[asyncio.Task], epoch: int) -> None:
        if self._recovery_task is not None and not self._recovery_task.done():
            # The pending recovery acts on whatever current_error is when it runs
            logger.debug(f"Boundary {self.name!r}: recovery already in progress")
            return
        self._recovery_task = None

        loop = self._bind_loop()
        if loop is None:
            logger.warning(f"Boundary {self.name!r} has no event loop; recovery not scheduled")
            self._recovery_in_progress = False
            return

        self._recovery_in_progress = True
        self._stats["recoveries_started"] += 1
        self._recovery_task = loop.create_task(self._run_recovery(report_task, epoch))

    async def _run_recovery(self, report_task: Optional[asyncio.Task], epoch: int) -> None:
        try:
            # Report first, then recover; waiting must not cancel the report
            if report_task is not None:
                await asyncio.wait({report_task})

            if not self._is_current(epoch):
                self._discard_recovery("state changed while reporting")
                return

            decision = plan_recovery(self._policy, self._attempt_count)
            logger.debug(f"Boundary {self.name!r} recovery plan: {decision.to_dict()}")
            await self._execute(decision, epoch)
        except asyncio.CancelledError:
            logger.debug(f"Boundary {self.name!r} recovery cancelled")
            raise
        finally:
            if self._recovery_task is asyncio.current_task():
                self._recovery_task = None
                self._recovery_in_progress = False

    async def _execute(self, decision: RecoveryDecision, epoch: int) -> None:
        match decision.action:
            case RecoveryAction.NONE:
                return

            case RecoveryAction.EXHAUSTED:
                logger.warning(
                    f"Boundary {self.name!r} reached retry limit "
                    f"({decision.attempt}); staying faulted"
                )
                return

            case RecoveryAction.RETRY:
                logger.info(
                    f"Boundary {self.name!r} retrying in {decision.delay:.3f}s "
                    f"(attempt {decision.attempt})"
                )
                await self._sleep(decision.delay)
                if not self._is_current(epoch):
                    self._discard_recovery("state changed during retry delay")
                    return
                self._release_recovery()
                self.retry()

            case RecoveryAction.RESET:
                await self._sleep(decision.delay)
                if not self._is_current(epoch):
                    self._discard_recovery("state changed during reset delay")
                    return
                self._release_recovery()
                self.reset()

            case RecoveryAction.CUSTOM:
                recovered = await self._run_custom(decision.recover_fn)
                if not self._is_current(epoch):
                    self._discard_recovery("state changed during custom recovery")
                    return
                if recovered:
                    self._release_recovery()
                    self.retry()
                else:
                    logger.info(f"Boundary {self.name!r} custom recovery declined")

            case _:
                assert_never(decision.action)

    async def _run_custom(self, recover_fn: Optional[RecoverFn]) -> bool:
        if recover_fn is None:
            return False
        try:
            return bool(await recover_fn())
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.error(f"Custom recovery failed: {e}")
            return False

    def _is_current(self, epoch: int) -> bool:
        return (
            not self._disposed
            and self._epoch == epoch
            and self._current_error is not None
        )

    def _discard_recovery(self, reason: str) -> None:
        self._stats["recoveries_discarded"] += 1
        logger.debug(f"Boundary {self.name!r} discarded stale recovery: {reason}")

    def _release_recovery(self) -> None:
        # Clear before the transition so a fault raised by the re-run starts a fresh recovery
        self._recovery_task = None
        self._recovery_in_progress = False

    def _cancel_recovery(self) -> None:
        task = self._recovery_task
        self._recovery_task = None
        self._recovery_in_progress = False
        if task is not None and not task.done() and task is not asyncio.current_task():
            task.cancel()

    # =========================================================================
    # MANUAL TRANSITIONS
    # =========================================================================

    def retry(self) -> bool:
        """
        Clear the fault and re-execute the existing producer.

        Increments attempt_count. producer_generation is unchanged, so a
        producer that fails deterministically fails again.

        Returns:
            True if the boundary was faulted
        """
        if self._disposed or self._current_error is None:
            return False

        self._current_error = None
        self._attempt_count += 1
        self._epoch += 1
        self._stats["retries"] += 1
        self._cancel_recovery()

        logger.info(f"Boundary {self.name!r} retry (attempt {self._attempt_count})")
        self._emit(BoundaryEvent.RETRIED)
        return True

    def reset(self) -> bool:
        """
        Clear the fault, zero attempt_count, and re-create the producer.

        A no-op on a pristine boundary (healthy with no attempts recorded).

        Returns:
            True if anything changed
        """
        if self._disposed:
            return False
        if self._current_error is None and self._attempt_count == 0:
            return False

        self._current_error = None
        self._attempt_count = 0
        self._generation += 1
        self._epoch += 1
        self._stats["resets"] += 1
        self._cancel_recovery()

        logger.info(f"Boundary {self.name!r} reset (generation {self._generation})")
        self._emit(BoundaryEvent.RESET)
        return True

    # =========================================================================
    # INTERNALS
    # =========================================================================

    def _bind_loop(self) -> Optional[asyncio.AbstractEventLoop]:
        if self._loop is not None and not self._loop.is_closed():
            return self._loop
        try:
            self._loop = asyncio.get_running_loop()
        except RuntimeError:
            return None
        return self._loop

    def __repr__(self) -> str:
        state = "faulted" if self.has_error else "healthy"
        if self._disposed:
            state = "disposed"
        return (
            f"BoundaryController(name={self.name!r}, state={state}, "
            f"attempts={self._attempt_count}, generation={self._generation})"
        )
