"""Tests for the Invoker.

Tests cover:
- sync, serie, parallel and waterfall modes
- Registration order is execution order in every mode
- Unknown required / optional targets
- Handler errors propagate unchanged
- Every run is recorded in the tracer
"""

import asyncio
import logging

import pytest

from forrest.actions import Action, ActionStore
from forrest.errors import UnknownTargetError
from forrest.invoke import ActionResult, Invoker, Mode
from forrest.targets import TargetRegistry
from forrest.tracer import Tracer


# -----------------------------------------------------------------------------
# Test Fixtures
# -----------------------------------------------------------------------------


def _make_invoker(*actions: Action) -> Invoker:
    registry = TargetRegistry.create_default()
    registry.register_targets({"S1": "s1"})
    store = ActionStore()
    store.commit_all(actions)
    return Invoker(registry, store, Tracer(), context="CTX")


def _values(results):
    return [r.value for r in results]


# -----------------------------------------------------------------------------
# Sync
# -----------------------------------------------------------------------------


class TestSync:
    """Tests for sync mode."""

    def test_returns_results_in_order(self):
        invoker = _make_invoker(
            Action("a", "s1", lambda args, ctx: args + 1),
            Action("b", "s1", lambda args, ctx: args + 2),
        )
        results = invoker.sync("$S1", 10)
        assert _values(results) == [11, 12]
        assert [r.action.name for r in results] == ["a", "b"]
        assert isinstance(results[0], ActionResult)

    def test_handler_receives_default_context(self):
        invoker = _make_invoker(Action("a", "s1", lambda args, ctx: ctx))
        assert _values(invoker.sync("$S1")) == ["CTX"]
        assert _values(invoker.sync("$S1", None, "OTHER")) == ["OTHER"]

    def test_constant_handler(self):
        invoker = _make_invoker(Action("a", "s1", 42))
        assert _values(invoker.sync("$S1")) == [42]

    def test_no_actions(self):
        assert _make_invoker().sync("$S1") == []

    def test_literal_target(self):
        invoker = _make_invoker(Action("a", "custom", lambda: "hit"))
        assert _values(invoker.sync("custom")) == ["hit"]

    def test_unknown_required_target(self):
        with pytest.raises(UnknownTargetError, match='Unknown target "S2"'):
            _make_invoker().sync("$S2")

    def test_unknown_required_target_is_traced(self):
        invoker = _make_invoker()
        with pytest.raises(UnknownTargetError):
            asyncio.run(invoker.serie("$S2"))
        record = invoker.tracer.records[0]
        assert (record.ref, record.target, record.mode) == ("$S2", None, "serie")
        assert record.finished_at is not None
        assert record.error == 'UnknownTargetError: Unknown target "S2"'
        assert invoker.tracer.render_compact() == ['$S2 ✗ UnknownTargetError: Unknown target "S2"']

    def test_unknown_optional_target_is_noop(self):
        invoker = _make_invoker()
        assert invoker.sync("$S2?") == []
        assert invoker.tracer.records[0].target is None

    def test_error_propagates_unchanged(self, caplog):
        error = RuntimeError("boom")

        def fail(args, ctx):
            raise error

        calls = []
        invoker = _make_invoker(
            Action("a", "s1", fail),
            Action("b", "s1", lambda: calls.append("b")),
        )
        with caplog.at_level(logging.ERROR, logger="forrest.invoke"):
            with pytest.raises(RuntimeError) as exc_info:
                invoker.sync("$S1")
        assert exc_info.value is error
        assert calls == []
        assert 'Action "a" failed on target "s1"' in caplog.text

    def test_awaitable_outside_loop_is_not_run(self):
        ran = []

        async def handler(args, ctx):
            ran.append(True)

        invoker = _make_invoker(Action("a", "s1", handler))
        assert _values(invoker.sync("$S1")) == [None]
        assert ran == []

    def test_awaitable_inside_loop_is_scheduled(self):
        ran = []

        async def handler(args, ctx):
            ran.append(args)
            return "done"

        invoker = _make_invoker(Action("a", "s1", handler))

        async def main():
            results = invoker.sync("$S1", 1)
            task = results[0].value
            assert ran == []
            assert await task == "done"

        asyncio.run(main())
        assert ran == [1]


# -----------------------------------------------------------------------------
# Serie
# -----------------------------------------------------------------------------


class TestSerie:
    """Tests for serie mode."""

    def test_awaits_each_before_next(self):
        events = []

        def make(name, delay):
            async def handler(args, ctx):
                events.append(f"{name}:start")
                await asyncio.sleep(delay)
                events.append(f"{name}:end")
                return name
            return handler

        invoker = _make_invoker(Action("a", "s1", make("a", 0.02)), Action("b", "s1", make("b", 0)))
        results = asyncio.run(invoker.serie("$S1"))
        assert _values(results) == ["a", "b"]
        assert events == ["a:start", "a:end", "b:start", "b:end"]

    def test_mixes_sync_and_async_handlers(self):
        async def async_handler(args, ctx):
            return args * 2

        invoker = _make_invoker(
            Action("a", "s1", lambda args, ctx: args),
            Action("b", "s1", async_handler),
        )
        assert _values(asyncio.run(invoker.serie("$S1", 3))) == [3, 6]

    def test_error_stops_remaining(self):
        calls = []

        async def fail(args, ctx):
            raise ValueError("bad")

        invoker = _make_invoker(
            Action("a", "s1", fail),
            Action("b", "s1", lambda: calls.append("b")),
        )
        with pytest.raises(ValueError, match="bad"):
            asyncio.run(invoker.serie("$S1"))
        assert calls == []
        record = invoker.tracer.records[0]
        assert record.actions[0].error == "ValueError: bad"
        assert record.finished_at is not None


# -----------------------------------------------------------------------------
# Parallel
# -----------------------------------------------------------------------------


class TestParallel:
    """Tests for parallel mode."""

    def test_results_in_registration_order(self):
        async def slow(args, ctx):
            await asyncio.sleep(0.03)
            return "slow"

        async def fast(args, ctx):
            return "fast"

        invoker = _make_invoker(Action("a", "s1", slow), Action("b", "s1", fast))
        assert _values(asyncio.run(invoker.parallel("$S1"))) == ["slow", "fast"]

    def test_three_handlers_resolve_out_of_order(self):
        def make(value, delay):
            async def handler(args, ctx):
                await asyncio.sleep(delay)
                return value
            return handler

        invoker = _make_invoker(
            Action("a", "s1", make(1, 0.03)),
            Action("b", "s1", make(2, 0.02)),
            Action("c", "s1", make(3, 0)),
        )
        assert _values(asyncio.run(invoker.parallel("$S1"))) == [1, 2, 3]

    def test_handlers_start_in_order_and_overlap(self):
        events = []

        def make(name):
            async def handler(args, ctx):
                events.append(f"{name}:start")
                await asyncio.sleep(0.01)
                events.append(f"{name}:end")
            return handler

        invoker = _make_invoker(Action("a", "s1", make("a")), Action("b", "s1", make("b")))
        asyncio.run(invoker.parallel("$S1"))
        assert events[:2] == ["a:start", "b:start"]

    def test_first_error_cancels_pending(self):
        finished = []

        async def fail(args, ctx):
            raise RuntimeError("boom")

        async def slow(args, ctx):
            await asyncio.sleep(1)
            finished.append("slow")

        invoker = _make_invoker(Action("a", "s1", slow), Action("b", "s1", fail))

        async def main():
            with pytest.raises(RuntimeError, match="boom"):
                await invoker.parallel("$S1")
            await asyncio.sleep(0)

        asyncio.run(main())
        assert finished == []

    def test_synchronous_error_closes_pending_runs(self):
        """A handler raising before returning still leaves a consistent trace."""
        started = []

        async def pending(args, ctx):
            started.append("a")
            await asyncio.sleep(1)

        def fail(args, ctx):
            raise RuntimeError("sync boom")

        async def never(args, ctx):
            started.append("c")

        invoker = _make_invoker(
            Action("a", "s1", pending),
            Action("b", "s1", fail),
            Action("c", "s1", never),
        )
        with pytest.raises(RuntimeError, match="sync boom"):
            asyncio.run(invoker.parallel("$S1"))

        record = invoker.tracer.records[0]
        assert [a.name for a in record.actions] == ["a", "b"]
        assert all(a.finished_at is not None for a in record.actions)
        assert record.actions[0].error.startswith("CancelledError")
        assert record.actions[1].error == "RuntimeError: sync boom"
        assert record.finished_at is not None
        assert started == []

    def test_async_error_closes_pending_runs(self):
        async def slow(args, ctx):
            await asyncio.sleep(1)

        async def fail(args, ctx):
            await asyncio.sleep(0)
            raise RuntimeError("boom")

        invoker = _make_invoker(Action("a", "s1", slow), Action("b", "s1", fail))
        with pytest.raises(RuntimeError, match="boom"):
            asyncio.run(invoker.parallel("$S1"))
        runs = invoker.tracer.records[0].actions
        assert runs[0].error.startswith("CancelledError")
        assert runs[1].error == "RuntimeError: boom"
        assert all(a.finished_at is not None for a in runs)

    def test_empty(self):
        assert asyncio.run(_make_invoker().parallel("$S1")) == []


# -----------------------------------------------------------------------------
# Waterfall
# -----------------------------------------------------------------------------


class TestWaterfall:
    """Tests for waterfall mode."""

    def test_pipes_value(self):
        async def double(args, ctx):
            return args * 2

        invoker = _make_invoker(
            Action("a", "s1", lambda args, ctx: args + 1),
            Action("b", "s1", double),
        )
        assert asyncio.run(invoker.waterfall("$S1", 1)) == 4

    def test_none_passes_through(self):
        invoker = _make_invoker(
            Action("a", "s1", lambda args, ctx: None),
            Action("b", "s1", lambda args, ctx: args + 1),
        )
        assert asyncio.run(invoker.waterfall("$S1", 1)) == 2

    def test_no_actions_returns_input(self):
        assert asyncio.run(_make_invoker().waterfall("$S1", "x")) == "x"

    def test_optional_unknown_returns_input(self):
        assert asyncio.run(_make_invoker().waterfall("$NOPE?", "x")) == "x"


# -----------------------------------------------------------------------------
# Mode dispatch and tracing
# -----------------------------------------------------------------------------


class TestInvoke:
    """Tests for invoke() and trace records."""

    def test_mode_by_name(self):
        invoker = _make_invoker(Action("a", "s1", lambda args, ctx: args))
        assert _values(invoker.invoke("$S1", 1)) == [1]
        assert _values(asyncio.run(invoker.invoke("$S1", 2, "serie"))) == [2]
        assert _values(asyncio.run(invoker.invoke("$S1", 3, Mode.PARALLEL))) == [3]
        assert asyncio.run(invoker.invoke("$S1", 4, "waterfall")) == 4

    def test_unknown_mode(self):
        with pytest.raises(ValueError):
            _make_invoker().invoke("$S1", None, "fanout")

    def test_records_every_run(self):
        invoker = _make_invoker(Action("a", "s1", 1, trace="a.py"), Action("b", "s1", 2))
        invoker.sync("$S1")
        asyncio.run(invoker.serie("$S1"))
        records = invoker.tracer.records
        assert [(r.ref, r.target, r.mode) for r in records] == [
            ("$S1", "s1", "sync"),
            ("$S1", "s1", "serie"),
        ]
        assert [a.name for a in records[0].actions] == ["a", "b"]
        assert records[0].actions[0].trace == "a.py"
        assert all(a.finished_at is not None for r in records for a in r.actions)
