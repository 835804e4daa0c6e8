"""
Invoker - runs the actions of a target under one of four modes.

Modes:
- sync: plain call, each handler runs immediately in order. Awaitables
  returned by handlers are not awaited.
- serie: each handler is awaited before the next one starts.
- parallel: every handler is started in order, then all are awaited
  together. Results come back in registration order.
- waterfall: each handler receives the previous handler's output; the last
  output is the result. A handler returning None passes its input through.

Execution flow for every mode:
1. Resolve the target reference (unknown required -> UnknownTargetError,
   unknown optional -> empty outcome, nothing runs)
2. Fetch the ordered action list from the ActionStore
3. Run the handlers, recording each run in the Tracer
4. Propagate the first handler error unchanged

Handlers are called as handler(args, ctx).
"""

import asyncio
import inspect
import logging
from enum import Enum
from typing import Any, NamedTuple, Optional

from forrest.actions import Action, ActionStore
from forrest.errors import UnknownTargetError
from forrest.targets import TargetRegistry
from forrest.tracer import ActionRecord, InvocationRecord, Tracer

logger = logging.getLogger(__name__)


class Mode(str, Enum):
    """Invocation modes."""
    SYNC = "sync"
    SERIE = "serie"
    PARALLEL = "parallel"
    WATERFALL = "waterfall"


class ActionResult(NamedTuple):
    """Per-action result of a sync, serie or parallel invocation."""
    value: Any
    action: Action


class Invoker:
    """
    Runs target actions.

    Usage:
        invoker = Invoker(registry, store, tracer, context=ctx)

        results = invoker.sync("$INIT_SERVICE", args)
        results = await invoker.serie("$INIT_SERVICE", args)
        results = await invoker.parallel("$INIT_SERVICES", args)
        value = await invoker.waterfall("transform", 1)

        # Or by mode name; sync returns a list, other modes a coroutine
        outcome = invoker.invoke("transform", 1, mode="waterfall")
    """

    def __init__(
        self,
        registry: TargetRegistry,
        store: ActionStore,
        tracer: Optional[Tracer] = None,
        context: Any = None,
    ) -> None:
        self.registry = registry
        self.store = store
        self.tracer = tracer or Tracer()
        self.context = context
        self._background: set[asyncio.Future] = set()

    def invoke(self, target_ref: str, args: Any = None, mode: Mode | str = Mode.SYNC, ctx: Any = None) -> Any:
        """
        Invoke a target under the given mode.

        Args:
            target_ref: Target reference ("$NAME", "$NAME?" or literal name)
            args: Payload passed to every handler (the first one for waterfall)
            mode: Mode or mode name
            ctx: Context passed to handlers (defaults to the invoker's context)

        Returns:
            list[ActionResult] for sync; a coroutine for the other modes

        Raises:
            ValueError: If mode is unknown
        """
        mode = Mode(mode)
        if mode is Mode.SYNC:
            return self.sync(target_ref, args, ctx)
        if mode is Mode.SERIE:
            return self.serie(target_ref, args, ctx)
        if mode is Mode.PARALLEL:
            return self.parallel(target_ref, args, ctx)
        return self.waterfall(target_ref, args, ctx)

    # -------------------------------------------------------------------------
    # Modes
    # -------------------------------------------------------------------------

    def sync(self, target_ref: str, args: Any = None, ctx: Any = None) -> list[ActionResult]:
        """Run every handler immediately, in order, without awaiting."""
        record, actions = self._open(target_ref, Mode.SYNC)
        ctx = self._ctx(ctx)
        results = []
        try:
            for action in actions:
                run = record.start_action(action.name, action.trace)
                value = self._call(action, run, args, ctx)
                if inspect.isawaitable(value):
                    value = self._detach(action, run, value)
                else:
                    run.finish()
                results.append(ActionResult(value, action))
        finally:
            record.finish()
        return results

    async def serie(self, target_ref: str, args: Any = None, ctx: Any = None) -> list[ActionResult]:
        """Run handlers one at a time, awaiting each before the next."""
        record, actions = self._open(target_ref, Mode.SERIE)
        ctx = self._ctx(ctx)
        results = []
        try:
            for action in actions:
                run = record.start_action(action.name, action.trace)
                value = await self._settle(action, run, self._call(action, run, args, ctx))
                results.append(ActionResult(value, action))
        finally:
            record.finish()
        return results

    async def parallel(self, target_ref: str, args: Any = None, ctx: Any = None) -> list[ActionResult]:
        """
        Start every handler, then await them together.

        The first error aborts the invocation: handlers still pending are
        cancelled and allowed to unwind, every run is closed in the trace,
        and no partial results are returned.
        """
        record, actions = self._open(target_ref, Mode.PARALLEL)
        ctx = self._ctx(ctx)
        runs: list[ActionRecord] = []
        pending: list[Any] = []
        tasks: list[asyncio.Future] = []
        try:
            try:
                for action in actions:
                    run = record.start_action(action.name, action.trace)
                    runs.append(run)
                    value = self._call(action, run, args, ctx)
                    pending.append(value)
                    tasks.append(asyncio.ensure_future(self._settle(action, run, value)))
                values = await asyncio.gather(*tasks)
            except BaseException as exc:
                await self._abort(tasks, runs, pending, exc)
                raise
        finally:
            record.finish()
        return [ActionResult(value, action) for value, action in zip(values, actions)]

    async def waterfall(self, target_ref: str, args: Any = None, ctx: Any = None) -> Any:
        """Pipe the payload through every handler and return the final value."""
        record, actions = self._open(target_ref, Mode.WATERFALL)
        ctx = self._ctx(ctx)
        value = args
        try:
            for action in actions:
                run = record.start_action(action.name, action.trace)
                result = await self._settle(action, run, self._call(action, run, value, ctx))
                if result is not None:
                    value = result
        finally:
            record.finish()
        return value

    # -------------------------------------------------------------------------
    # Internals
    # -------------------------------------------------------------------------

    def _ctx(self, ctx: Any) -> Any:
        return self.context if ctx is None else ctx

    def _open(self, target_ref: str, mode: Mode) -> tuple[InvocationRecord, list[Action]]:
        """Resolve the reference, fetch actions and open a trace record."""
        try:
            ref = self.registry.resolve(target_ref)
        except UnknownTargetError as exc:
            self.tracer.start_invocation(target_ref, None, mode.value).finish(exc)
            raise
        actions = self.store.list_for(ref.target) if ref.resolved else []
        if not ref.resolved:
            logger.debug(f'Optional target "{ref.name}" is not declared, skipping')
        else:
            logger.debug(
                f"Invoking {ref.target} ({mode.value}) with {len(actions)} action(s)",
                extra={"target": ref.target, "event": "invoke"},
            )
        return self.tracer.start_invocation(target_ref, ref.target, mode.value), actions

    def _call(self, action: Action, run: ActionRecord, args: Any, ctx: Any) -> Any:
        """Call the handler, recording a synchronous failure."""
        try:
            return action.call(args, ctx)
        except Exception as exc:
            run.finish(exc)
            self._log_failure(action, exc)
            raise

    async def _settle(self, action: Action, run: ActionRecord, value: Any) -> Any:
        """Await the handler's result if needed and close its trace record."""
        try:
            if inspect.isawaitable(value):
                value = await value
        except asyncio.CancelledError as exc:
            run.finish(exc)
            raise
        except Exception as exc:
            run.finish(exc)
            self._log_failure(action, exc)
            raise
        run.finish()
        return value

    async def _abort(
        self,
        tasks: list[asyncio.Future],
        runs: list[ActionRecord],
        pending: list[Any],
        exc: BaseException,
    ) -> None:
        """Cancel pending parallel tasks, wait for them, and close their runs."""
        for task in tasks:
            if not task.done():
                task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        for run, value in zip(runs, pending):
            # Tasks cancelled before their first step never reach _settle
            if run.finished_at is None:
                if inspect.iscoroutine(value):
                    value.close()
                run.finish(asyncio.CancelledError(f"aborted after {type(exc).__name__}"))

    def _detach(self, action: Action, run: ActionRecord, awaitable: Any) -> Any:
        """
        Let an awaitable returned in sync mode complete on its own.

        Inside a running event loop the awaitable is scheduled as a task and
        the task is returned. Without a loop it cannot run: a coroutine is
        closed and None is returned.
        """
        try:
            asyncio.get_running_loop()
        except RuntimeError:
            if inspect.iscoroutine(awaitable):
                awaitable.close()
            logger.warning(
                f'Action "{action.name}" returned an awaitable in sync mode '
                f"outside an event loop; it was not run"
            )
            run.finish()
            return None

        task = asyncio.ensure_future(awaitable)
        self._background.add(task)

        def _done(fut: asyncio.Future) -> None:
            self._background.discard(fut)
            exc = None if fut.cancelled() else fut.exception()
            run.finish(exc)
            if exc is not None:
                self._log_failure(action, exc)

        task.add_done_callback(_done)
        return task

    def _log_failure(self, action: Action, exc: BaseException) -> None:
        logger.error(
            f'Action "{action.name}" failed on target "{action.target}": {exc}',
            extra={"target": action.target, "action": action.name, "event": "action_failed"},
        )
