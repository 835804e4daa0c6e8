"""
Integration Loader - runs a batch of integrations and commits their actions.

Loading is two-phase:
1. Declare: every integration of the batch runs. Targets it declares are
   registered right away; actions it registers are only queued.
2. Commit: once the whole batch has run, every queued action's target
   reference is resolved and the batch is appended to the ActionStore.

Nothing is invoked while loading, so integration B may attach to a target
declared by integration A whatever their order in the list.

Integration forms, normalized here and nowhere else:
- callable(ctx)                       -> may register_action() or return actions
- object/module with register(ctx)    -> same as a callable
- {"target": ..., "handler": ...}     -> one declarative action
- [{...}, {...}]                      -> several declarative actions
- ("target", handler, name_or_opts)   -> legacy tuple (deprecated)
"""

import inspect
import logging
import warnings
from collections.abc import Iterable, Mapping
from typing import Any, Callable, Optional

from forrest.actions import Action, default_name, make_action, positional_arity
from forrest.context import Context, build_declaration
from forrest.errors import InvalidActionError

logger = logging.getLogger(__name__)


def _register_fn(integration: Any) -> Optional[Callable]:
    """
    Return the function to run for an integration, None if declarative.

    Modules and objects are asked for a register() function first, then a
    default() one; otherwise the integration itself must be callable.
    """
    if isinstance(integration, (Mapping, list, tuple, str, Action)):
        return None
    for attr in ("register", "default"):
        register = getattr(integration, attr, None)
        if callable(register):
            return register
    if callable(integration):
        return integration
    return None


def integration_name(integration: Any) -> str:
    """Name an integration after its function, module or object."""
    if isinstance(integration, Mapping):
        name = integration.get("name")
        return name if isinstance(name, str) and name else "anonymous"
    return default_name(integration)


def _is_legacy_tuple(value: Any) -> bool:
    return (
        isinstance(value, (list, tuple))
        and 2 <= len(value) <= 3
        and isinstance(value[0], str)
    )


class IntegrationLoader:
    """
    Loads batches of integrations into a Context.

    Usage:
        loader = IntegrationLoader()
        await loader.load([service_a, service_b], ctx, prefix="→ ", kind="Service")
    """

    async def load(
        self,
        integrations: Optional[Iterable[Any]],
        context: Context,
        prefix: str = "",
        kind: str = "Integration",
    ) -> list[Action]:
        """
        Run a batch of integrations, then commit their actions in one pass.

        Args:
            integrations: Integrations in any supported form
            context: Shared context; its registry and store are updated
            prefix: Prepended to every action name of the batch
            kind: Integration kind used in log and error messages

        Returns:
            The committed actions, in commit order

        Raises:
            InvalidActionError: If an integration declares an unusable action
            UnknownTargetError: If an action targets an unknown required target
        """
        queue: list[Action] = []
        seen: set[int] = set()
        count = 0

        for integration in integrations or ():
            if id(integration) in seen:
                logger.warning(
                    f'{kind} "{integration_name(integration)}" is listed twice, loading it once'
                )
                continue
            seen.add(id(integration))
            await self._run(integration, context, queue, prefix, kind)
            count += 1

        # Resolve the whole batch first so a bad reference commits nothing
        resolved = [a for a in (context.resolve_action(action) for action in queue) if a is not None]
        context.store.commit_all(resolved)

        logger.info(
            f"Loaded {count} {kind.lower()}(s), committed {len(resolved)} action(s)",
            extra={"event": "load", "metadata": {"kind": kind, "skipped": len(queue) - len(resolved)}},
        )
        return resolved

    async def _run(
        self,
        integration: Any,
        context: Context,
        queue: list[Action],
        prefix: str,
        kind: str,
    ) -> None:
        """Run one integration, queueing everything it declares."""
        owner = integration_name(integration)
        register = _register_fn(integration)

        if register is None:
            self._collect(integration, queue, prefix, kind, owner)
            return

        def register_action(action: Any = None, /, *legacy: Any, **fields: Any) -> None:
            queue.append(self._declare(build_declaration(action, fields, legacy), prefix, kind, owner))

        scoped = context.bind(register_action)
        logger.debug(f'Running {kind.lower()} "{owner}"')
        computed = register(scoped) if positional_arity(register) else register()
        if inspect.isawaitable(computed):
            computed = await computed
        if computed is not None:
            self._collect(computed, queue, prefix, kind, owner)

    def _collect(self, value: Any, queue: list[Action], prefix: str, kind: str, owner: str) -> None:
        """Queue the action(s) described by a declarative value."""
        if isinstance(value, Action):
            queue.append(self._declare(build_declaration(value, {}), prefix, kind, owner))
        elif isinstance(value, Mapping):
            queue.append(self._declare(value, prefix, kind, owner))
        elif _is_legacy_tuple(value):
            queue.append(self._declare_legacy(value, prefix, kind, owner))
        elif isinstance(value, (list, tuple)):
            for item in value:
                if not isinstance(item, (Mapping, Action)):
                    raise InvalidActionError(
                        f'{kind} "{owner}" declares an invalid action of type {type(item).__name__}'
                    )
                self._collect(item, queue, prefix, kind, owner)
        else:
            raise InvalidActionError(
                f'{kind} "{owner}" is not a valid integration ({type(value).__name__})'
            )

    def _declare(self, declaration: Mapping[str, Any], prefix: str, kind: str, owner: str) -> Action:
        name = f"{prefix}{declaration.get('name') or owner}"
        return make_action(declaration, name, kind, owner)

    def _declare_legacy(self, value: Any, prefix: str, kind: str, owner: str) -> Action:
        warnings.warn(
            f'{kind} "{owner}" uses the (target, handler, name) form; '
            'use {"target": ..., "handler": ...} instead',
            DeprecationWarning,
            stacklevel=2,
        )
        target, handler = value[0], value[1]
        options = value[2] if len(value) > 2 else {}
        declaration: dict[str, Any] = {}
        if isinstance(options, str):
            declaration["name"] = options
        elif isinstance(options, Mapping):
            declaration.update(options)
        declaration.update({"target": target, "handler": handler})
        return self._declare(declaration, prefix, kind, owner)

