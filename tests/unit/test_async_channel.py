"""
Unit tests for the async fault channel and loop handler chain.
"""

import asyncio
from unittest.mock import Mock

import pytest

from bulwark.boundary import LoopFaultHandlerChain
from bulwark.core.enums import ErrorClassification


async def _settle(rounds=5):
    for _ in range(rounds):
        await asyncio.sleep(0)


class TestSpawn:
    """Tests for tasks started inside a boundary scope."""

    @pytest.mark.asyncio
    async def test_spawned_failure_is_captured(self, make_boundary):
        boundary = make_boundary()

        async def background():
            raise ValueError("background failure")

        task = boundary.spawn(background(), name="bg")
        await asyncio.wait({task})
        await _settle()

        assert boundary.has_error
        assert boundary.current_error.classification == ErrorClassification.ASYNC_FAULT
        assert boundary.current_error.message == "background failure"
        await boundary.wait_idle()

    @pytest.mark.asyncio
    async def test_successful_task_is_ignored(self, make_boundary):
        boundary = make_boundary()

        async def background():
            return 42

        task = boundary.spawn(background())
        assert await task == 42
        await _settle()

        assert not boundary.has_error
        assert boundary.channel.pending_tasks == []

    @pytest.mark.asyncio
    async def test_cancelled_task_is_ignored(self, make_boundary):
        boundary = make_boundary()

        task = boundary.spawn(asyncio.sleep(10))
        await _settle(1)
        assert boundary.channel.cancel_all() == 1
        await _settle()

        assert task.cancelled()
        assert not boundary.has_error


class TestLoopHandlerChain:
    """Tests for install/restore of the loop exception handler."""

    @pytest.mark.asyncio
    async def test_installs_and_restores_previous(self, make_boundary):
        loop = asyncio.get_running_loop()
        previous = Mock()
        loop.set_exception_handler(previous)
        try:
            boundary = make_boundary()
            assert loop.get_exception_handler() is not previous

            boundary.channel.detach()
            assert loop.get_exception_handler() is previous
        finally:
            loop.set_exception_handler(None)

    @pytest.mark.asyncio
    async def test_unclaimed_fault_is_forwarded(self, make_boundary):
        loop = asyncio.get_running_loop()
        previous = Mock()
        loop.set_exception_handler(previous)
        try:
            boundary = make_boundary()
            error = ValueError("not ours")

            loop.call_exception_handler({"message": "stray", "exception": error})

            previous.assert_called_once()
            assert previous.call_args.args[1]["exception"] is error
            assert not boundary.has_error
        finally:
            loop.set_exception_handler(None)

    @pytest.mark.asyncio
    async def test_owned_future_is_claimed(self, make_boundary):
        loop = asyncio.get_running_loop()
        previous = Mock()
        loop.set_exception_handler(previous)
        try:
            boundary = make_boundary()
            future = loop.create_future()
            boundary.channel.adopt(future)
            error = RuntimeError("owned")

            loop.call_exception_handler(
                {"message": "unhandled", "exception": error, "future": future}
            )

            previous.assert_not_called()
            assert boundary.current_error.fault is error
            assert boundary.current_error.classification == ErrorClassification.ASYNC_FAULT
            future.cancel()
            await boundary.wait_idle()
        finally:
            loop.set_exception_handler(None)

    @pytest.mark.asyncio
    async def test_escalated_claim_is_forwarded(self, make_boundary):
        loop = asyncio.get_running_loop()
        previous = Mock()
        loop.set_exception_handler(previous)
        try:
            boundary = make_boundary(should_escalate=lambda fault: True)
            future = loop.create_future()
            boundary.channel.adopt(future)
            error = KeyError("escalate me")

            loop.call_exception_handler(
                {"message": "unhandled", "exception": error, "future": future}
            )

            assert boundary.has_error
            previous.assert_called_once()
            assert previous.call_args.args[1]["exception"] is error
            future.cancel()
            await boundary.wait_idle()
        finally:
            loop.set_exception_handler(None)

    @pytest.mark.asyncio
    async def test_escalated_spawned_fault_reaches_host(self, make_boundary):
        loop = asyncio.get_running_loop()
        previous = Mock()
        loop.set_exception_handler(previous)
        try:
            boundary = make_boundary(should_escalate=lambda fault: True)
            error = KeyError("from task")

            async def background():
                raise error

            task = boundary.spawn(background())
            await asyncio.wait({task})
            await _settle()

            assert boundary.has_error
            previous.assert_called_once()
            assert previous.call_args.args[1]["exception"] is error
            await boundary.wait_idle()
        finally:
            loop.set_exception_handler(None)

    @pytest.mark.asyncio
    async def test_two_boundaries_share_chain(self, make_boundary):
        loop = asyncio.get_running_loop()
        first = make_boundary(name="first")
        second = make_boundary(name="second")
        chain = LoopFaultHandlerChain.for_loop(loop)

        assert chain.sink_count == 2

        first.channel.detach()
        assert chain.sink_count == 1
        assert chain.is_installed

        second.channel.detach()
        assert not chain.is_installed
        assert loop.get_exception_handler() is None

    @pytest.mark.asyncio
    async def test_foreign_handler_left_in_place(self, make_boundary):
        loop = asyncio.get_running_loop()
        boundary = make_boundary()
        foreign = Mock()
        loop.set_exception_handler(foreign)
        try:
            boundary.channel.detach()
            assert loop.get_exception_handler() is foreign
        finally:
            loop.set_exception_handler(None)

    @pytest.mark.asyncio
    async def test_detach_is_idempotent(self, make_boundary):
        boundary = make_boundary()

        assert boundary.channel.detach() is True
        assert boundary.channel.detach() is False
