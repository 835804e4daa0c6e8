"""App runner - the fixed lifecycle sequence of one application boot.

An app is described by a manifest:

    app = create_app(
        services=[service_db, service_http],
        features=[feature_home],
        settings={"http": {"port": 8080}},
        context={"clock": time.time},
        trace="compact",
    )
    result = await app.run()        # or: run_app(services=..., ...)

Boot sequence (any error halts the boot):
    1. load services                (prefix "→ ")
    2. $START                       serie
    3. $SETTINGS                    serie
    4. load features                (prefix "▶ ")
    5. $INIT_SERVICES  parallel, $INIT_SERVICE  serie,
       $INIT_FEATURES  parallel, $INIT_FEATURE  serie
    6. $START_SERVICES parallel, $START_SERVICE serie,
       $START_FEATURES parallel, $START_FEATURE serie
    7. $FINISH                      serie
    8. optional trace report

Settings may be a mapping (deep-copied, never aliased) or a builder callable
that runs as the first $SETTINGS action.
"""

import asyncio
import copy
import inspect
import logging
import time
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from typing import Any, Callable, Optional

from rich.console import Console

from forrest.actions import call_handler
from forrest.constants import BOOT, FEATURE, SERVICE
from forrest.context import Context
from forrest.invoke import Mode
from forrest.loader import IntegrationLoader
from forrest.tracer import TRACE_MODES

logger = logging.getLogger(__name__)

# Phases invoked after features are loaded, in order
INIT_AND_START_PHASES: tuple[tuple[str, Mode], ...] = (
    ("$INIT_SERVICES", Mode.PARALLEL),
    ("$INIT_SERVICE", Mode.SERIE),
    ("$INIT_FEATURES", Mode.PARALLEL),
    ("$INIT_FEATURE", Mode.SERIE),
    ("$START_SERVICES", Mode.PARALLEL),
    ("$START_SERVICE", Mode.SERIE),
    ("$START_FEATURES", Mode.PARALLEL),
    ("$START_FEATURE", Mode.SERIE),
)

SETTINGS_ACTION_NAME = f"{BOOT} app/settings"


@dataclass
class AppResult:
    """Final state of a boot.

    - settings: the settings tree after every handler ran
    - context: the shared Context (registry, store and tracer included)
    """
    settings: dict[str, Any]
    context: Context

    def to_dict(self) -> dict[str, Any]:
        return {"settings": self.settings, "context": self.context.data}


def _settings_handler(builder: Callable) -> Callable:
    """Wrap a settings builder as a $SETTINGS handler."""

    async def build_settings(args: Any, ctx: Context) -> None:
        values = call_handler(builder, ctx, ctx)
        if inspect.isawaitable(values):
            values = await values
        if isinstance(values, Mapping):
            for key, value in values.items():
                ctx.set_config(key, value)

    return build_settings


class App:
    """An application assembled from services and features."""

    def __init__(
        self,
        services: Optional[Iterable[Any]] = None,
        features: Optional[Iterable[Any]] = None,
        settings: Any = None,
        context: Optional[Mapping[str, Any]] = None,
        trace: Optional[str] = None,
        console: Optional[Console] = None,
    ) -> None:
        if trace is not None and trace not in TRACE_MODES:
            raise ValueError(f"Unknown trace mode: {trace}. Expected one of {TRACE_MODES}")
        if settings is not None and not (isinstance(settings, Mapping) or callable(settings)):
            raise TypeError(
                f"settings must be a mapping or a callable, not {type(settings).__name__}"
            )

        self.services = list(services or [])
        self.features = list(features or [])
        self.settings = settings
        self.context = context
        self.trace = trace
        self.console = console
        self.loader = IntegrationLoader()

    def _create_context(self) -> tuple[dict[str, Any], Context]:
        if self.settings is None or callable(self.settings):
            tree: dict[str, Any] = {}
        else:
            tree = copy.deepcopy(dict(self.settings))
        ctx = Context(data=self.context, settings=tree)
        if callable(self.settings):
            ctx.register_action(
                name=SETTINGS_ACTION_NAME,
                target="$SETTINGS",
                handler=_settings_handler(self.settings),
            )
        return tree, ctx

    async def _phase(self, ctx: Context, target: str, mode: Mode) -> None:
        logger.info(f"Phase {target} ({mode.value})", extra={"target": target, "event": "phase"})
        await ctx.invoker.invoke(target, ctx, mode, ctx)

    async def run(self) -> AppResult:
        """
        Boot the application.

        Returns:
            AppResult with the final settings and context

        Raises:
            Exception: The first error raised by loading or by any handler
        """
        settings, ctx = self._create_context()
        start_time = time.time()
        logger.info(
            f"Booting app: {len(self.services)} service(s), {len(self.features)} feature(s)"
        )

        try:
            await self.loader.load(self.services, ctx, f"{SERVICE} ", "Service")
            await self._phase(ctx, "$START", Mode.SERIE)
            await self._phase(ctx, "$SETTINGS", Mode.SERIE)
            await self.loader.load(self.features, ctx, f"{FEATURE} ", "Feature")
            for target, mode in INIT_AND_START_PHASES:
                await self._phase(ctx, target, mode)
            await self._phase(ctx, "$FINISH", Mode.SERIE)
        except Exception as e:
            logger.error(f"Boot failed: {e}")
            raise

        duration_ms = int((time.time() - start_time) * 1000)
        logger.info(f"Boot completed in {duration_ms}ms ({len(ctx.store)} action(s))")

        if self.trace:
            ctx.tracer.print_report(self.trace, self.console)

        return AppResult(settings=settings, context=ctx)


def create_app(
    services: Optional[Iterable[Any]] = None,
    features: Optional[Iterable[Any]] = None,
    settings: Any = None,
    context: Optional[Mapping[str, Any]] = None,
    trace: Optional[str] = None,
    console: Optional[Console] = None,
) -> App:
    """
    Create an App from a manifest.

    Args:
        services: Service integrations, loaded before $START
        features: Feature integrations, loaded after $SETTINGS
        settings: Settings mapping, or a builder called with the context
        context: Initial context values
        trace: None, "compact" or "full"
        console: rich Console for the trace report

    Returns:
        App ready to run()
    """
    return App(
        services=services,
        features=features,
        settings=settings,
        context=context,
        trace=trace,
        console=console,
    )


async def start_app(**manifest: Any) -> AppResult:
    """Create and boot an app from manifest keywords."""
    return await create_app(**manifest).run()


def run_app(**manifest: Any) -> AppResult:
    """Boot an app from manifest keywords, blocking until it finishes."""
    return asyncio.run(start_app(**manifest))
