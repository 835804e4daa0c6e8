"""
Context - the shared runtime state handed to every handler.

One Context lives for one boot. It holds two independent trees:
- settings: application configuration (get_config / set_config)
- data: the runtime context seeded by the caller (get_context / set_context)

and exposes the engine API:
- register_targets(): declare new targets
- register_action(): commit an action
- create_extension(): invoke a target (with .sync/.serie/.parallel/.waterfall)

Both trees are live: a set_config() in one handler is visible to every
handler that runs after it. Nothing is copied on read.
"""

import copy
import logging
from collections.abc import Mapping, Sequence
from typing import Any, Optional

from forrest.actions import Action, ActionStore, default_name, make_action
from forrest.errors import (
    ConfigNotFoundError,
    ContextNotFoundError,
    InvalidActionError,
    PathNotFoundError,
)
from forrest.invoke import Invoker, Mode
from forrest.targets import TargetRegistry
from forrest.tracer import Tracer
from forrest.tree import MISSING, Path, get_path, has_path, set_path


logger = logging.getLogger(__name__)


class ExtensionFactory:
    """
    Invoke targets from inside handlers.

    Usage:
        ctx.create_extension("aaa", {"value": 1})             # sync
        ctx.create_extension("aaa", {"value": 1}, "parallel")  # coroutine
        ctx.create_extension.sync("aaa", {"value": 1})
        await ctx.create_extension.serie("bbb", {"value": 2})
        await ctx.create_extension.parallel("ccc", {"value": 3})
        await ctx.create_extension.waterfall("ddd", 1)
    """

    def __init__(self, invoker: Invoker, context: "Context") -> None:
        self._invoker = invoker
        self._context = context

    def __call__(self, target: str, args: Any = None, mode: Mode | str = Mode.SYNC) -> Any:
        return self._invoker.invoke(target, args, mode, self._context)

    def sync(self, target: str, args: Any = None):
        return self._invoker.sync(target, args, self._context)

    def serie(self, target: str, args: Any = None):
        return self._invoker.serie(target, args, self._context)

    serial = serie

    def parallel(self, target: str, args: Any = None):
        return self._invoker.parallel(target, args, self._context)

    def waterfall(self, target: str, args: Any = None):
        return self._invoker.waterfall(target, args, self._context)


class Context:
    """
    Shared, mutable application context.

    Seeded values are reachable as ctx.get_context("key"), ctx["key"] or,
    for top-level keys that do not clash with the API, ctx.key.

    Usage:
        ctx = Context(data={"foo": 1}, settings={"db": {"host": "localhost"}})

        ctx.get_config("db.host")          # "localhost"
        ctx.get_config("db.port", 5432)    # 5432
        ctx.set_context("cache.size", 10)
        ctx.register_targets({"S1": "s1"})
        ctx.register_action(target="$S1", handler=lambda args, ctx: 42)
        ctx.create_extension.sync("$S1")   # [ActionResult(42, ...)]
    """

    def __init__(
        self,
        data: Optional[Mapping[str, Any]] = None,
        settings: Optional[dict[str, Any]] = None,
        registry: Optional[TargetRegistry] = None,
        store: Optional[ActionStore] = None,
        tracer: Optional[Tracer] = None,
    ) -> None:
        self.data: dict[str, Any] = dict(data or {})
        self._settings: dict[str, Any] = settings if settings is not None else {}
        self.targets = registry or TargetRegistry.create_default()
        self.store = store or ActionStore()
        self.tracer = tracer or Tracer()
        self.invoker = Invoker(self.targets, self.store, self.tracer, context=self)
        self.create_extension = ExtensionFactory(self.invoker, self)

    # -------------------------------------------------------------------------
    # Settings and context trees
    # -------------------------------------------------------------------------

    def get_config(self, path: Path, default: Any = MISSING) -> Any:
        """
        Read a settings value.

        Raises:
            ConfigNotFoundError: If the path is absent and no default was given
        """
        try:
            return get_path(self._settings, path, default)
        except PathNotFoundError as exc:
            raise ConfigNotFoundError(exc.path) from None

    def set_config(self, path: Path, value: Any) -> None:
        """Write a settings value, creating intermediate nodes."""
        set_path(self._settings, path, value)

    def get_context(self, path: Path, default: Any = MISSING) -> Any:
        """
        Read a context value.

        Raises:
            ContextNotFoundError: If the path is absent and no default was given
        """
        try:
            return get_path(self.data, path, default)
        except PathNotFoundError as exc:
            raise ContextNotFoundError(exc.path) from None

    def set_context(self, path: Path, value: Any) -> None:
        """Write a context value, creating intermediate nodes."""
        set_path(self.data, path, value)

    # -------------------------------------------------------------------------
    # Targets and actions
    # -------------------------------------------------------------------------

    def register_targets(self, targets: Mapping[str, str]) -> None:
        """Declare targets (reference name -> target label)."""
        self.targets.register_targets(targets)

    def register_action(self, action: Any = None, /, *legacy: Any, **fields: Any) -> Optional[Action]:
        """
        Commit an action right away.

        Integrations being loaded receive a scoped variant that queues
        instead; this one is for registrations made while the app runs.

        Args:
            action: Action or declarative mapping (or pass fields as keywords)
            **fields: target, handler, name, trace, ... (override the mapping)

        Returns:
            The committed Action, or None if its optional target is unknown

        Raises:
            InvalidActionError: If the declaration is unusable
            UnknownTargetError: If a required target reference is unknown
        """
        declaration = build_declaration(action, fields, legacy)
        name = declaration.get("name") or default_name(declaration.get("handler"))
        return self.commit(make_action(declaration, name, owner=name))

    def resolve_action(self, action: Action) -> Optional[Action]:
        """
        Bind an action to the concrete target its reference resolves to.

        Returns:
            The bound Action, or None if its optional target is unknown

        Raises:
            UnknownTargetError: If a required target reference is unknown
        """
        ref = self.targets.resolve(action.target)
        if not ref.resolved:
            logger.debug(
                f'Skipping action "{action.name}": optional target "{ref.name}" is not declared'
            )
            return None
        return action.retarget(ref.target)

    def commit(self, action: Action) -> Optional[Action]:
        """
        Resolve an action's target reference and append it to the store.

        Returns:
            The committed Action, or None if its optional target is unknown
        """
        committed = self.resolve_action(action)
        if committed is not None:
            self.store.commit(committed)
        return committed

    def bind(self, register_action: Any) -> "Context":
        """
        Create a view of this context with a different register_action.

        The view shares every tree, the registry and the store.
        """
        scoped = copy.copy(self)
        scoped.register_action = register_action
        return scoped

    # -------------------------------------------------------------------------
    # Mapping-style access to the context tree
    # -------------------------------------------------------------------------

    def __getitem__(self, path: Path) -> Any:
        return self.get_context(path)

    def __contains__(self, path: Path) -> bool:
        return has_path(self.data, path)

    def __getattr__(self, name: str) -> Any:
        data = self.__dict__.get("data")
        if data is not None and not name.startswith("_") and name in data:
            return data[name]
        raise AttributeError(f"'{type(self).__name__}' object has no attribute '{name}'")

    def __repr__(self) -> str:
        return f"Context(keys={list(self.data)}, actions={len(self.store)})"


def build_declaration(
    action: Any,
    fields: Mapping[str, Any],
    extra: Sequence[Any] = (),
) -> dict[str, Any]:
    """
    Normalize register_action() arguments into a declarative mapping.

    Args:
        action: Action, declarative mapping or None
        fields: Keyword fields, merged over the mapping
        extra: Positional arguments after the first; always rejected

    Raises:
        InvalidActionError: If the arguments cannot describe an action
    """
    if isinstance(action, str):
        raise InvalidActionError(
            "register_action() takes a declarative action, "
            f'not a target string "{action}"; use register_action(target=..., handler=...)'
        )
    if extra:
        raise InvalidActionError(
            f"register_action() takes one declarative action, got {len(extra) + 1} "
            "positional arguments; use register_action(target=..., handler=...)"
        )
    if action is not None and not isinstance(action, (Mapping, Action)):
        raise InvalidActionError(f"Cannot register {type(action).__name__} as an action")

    declaration: dict[str, Any] = {}
    if isinstance(action, Action):
        declaration.update(action.meta)
        declaration.update(action.to_dict())
        declaration["handler"] = action.handler
    elif action is not None:
        declaration.update(action)
    declaration.update(fields)
    return declaration
