"""
Action records and the Action Store.

An Action binds a named handler to one target. The store keeps, per target,
the ordered list of committed actions. Order of commit is order of
execution in every invocation mode.

Actions are appended, never mutated or removed.
"""

import inspect
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from typing import Any, Callable, Optional

from forrest.constants import OPTIONAL_MARKER, REFERENCE_MARKER
from forrest.errors import InvalidHandlerError, InvalidTargetError


def positional_arity(handler: Callable) -> int:
    """
    Count how many of (args, ctx) a handler accepts positionally.

    Callables without an inspectable signature are assumed to take both.
    """
    try:
        signature = inspect.signature(handler)
    except (TypeError, ValueError):
        return 2

    count = 0
    for param in signature.parameters.values():
        if param.kind == param.VAR_POSITIONAL:
            return 2
        if param.kind in (param.POSITIONAL_ONLY, param.POSITIONAL_OR_KEYWORD):
            count += 1
    return min(count, 2)


def call_handler(handler: Any, args: Any, ctx: Any, arity: Optional[int] = None) -> Any:
    """
    Call a handler with as many of (args, ctx) as it accepts.

    Handlers that accept fewer positional parameters receive only the
    leading ones: handler(args, ctx), handler(args) or handler().
    A non-callable handler is a constant and is returned as-is.
    """
    if not callable(handler):
        return handler
    if arity is None:
        arity = positional_arity(handler)
    if arity >= 2:
        return handler(args, ctx)
    if arity == 1:
        return handler(args)
    return handler()


@dataclass(frozen=True)
class Action:
    """
    A named handler bound to one target.

    Attributes:
        name: Action name, shown in the boot trace
        target: Target reference; the concrete target name once committed
        handler: Callable receiving (args, ctx), or a constant return value
        trace: Optional trace source (e.g. the defining module's file)
        meta: Extra keys of the declarative action
    """
    name: str
    target: str
    handler: Any
    trace: Optional[str] = None
    meta: dict[str, Any] = field(default_factory=dict, compare=False)

    def __post_init__(self):
        object.__setattr__(
            self,
            "_arity",
            positional_arity(self.handler) if callable(self.handler) else 0,
        )

    def call(self, args: Any, ctx: Any) -> Any:
        """Run the handler, see call_handler()."""
        return call_handler(self.handler, args, ctx, self._arity)

    def retarget(self, target: str) -> "Action":
        """Return a copy bound to a concrete target name."""
        return Action(
            name=self.name,
            target=target,
            handler=self.handler,
            trace=self.trace,
            meta=self.meta,
        )

    def to_dict(self) -> dict[str, Any]:
        """Serialize identity fields (the handler is not serializable)."""
        result: dict[str, Any] = {"name": self.name, "target": self.target}
        if self.trace is not None:
            result["trace"] = self.trace
        return result


class ActionStore:
    """
    Ordered per-target action lists.

    Usage:
        store = ActionStore()
        store.commit_all([action_a, action_b])
        store.list_for("init::service")   # [action_a, action_b]
        store.list_for("never-used")      # []
    """

    def __init__(self) -> None:
        self._actions: dict[str, list[Action]] = {}

    def commit(self, action: Action) -> None:
        """Append one action to its target's list."""
        self._actions.setdefault(action.target, []).append(action)

    def commit_all(self, actions: Iterable[Action]) -> None:
        """Append actions in submission order."""
        for action in actions:
            self.commit(action)

    def list_for(self, target: str) -> list[Action]:
        """
        Get the actions registered on a target.

        Args:
            target: Concrete target name

        Returns:
            Ordered copy of the action list; empty if nothing was committed
        """
        return list(self._actions.get(target, ()))

    def targets(self) -> list[str]:
        """List target names that have at least one action."""
        return list(self._actions.keys())

    def __len__(self) -> int:
        return sum(len(actions) for actions in self._actions.values())


# Keys of a declarative action that map onto Action fields
ACTION_KEYS = ("name", "target", "handler", "trace")


def default_name(value: Any) -> str:
    """Derive a name from a function, module or object."""
    name = getattr(value, "__name__", None) or getattr(value, "name", None)
    if isinstance(name, str) and name and name != "<lambda>":
        return name.rsplit(".", 1)[-1]
    return "anonymous"


def make_action(
    declaration: Mapping[str, Any],
    name: str,
    kind: str = "Integration",
    owner: str = "anonymous",
) -> Action:
    """
    Build an Action from a declarative mapping.

    Args:
        declaration: {"target": ..., "handler": ..., "name"?, "trace"?, ...}
        name: Final action name (prefix already applied)
        kind: Integration kind for error messages (Service, Feature, ...)
        owner: Integration name for error messages

    Returns:
        Action with the target reference still unresolved

    Raises:
        InvalidTargetError: If the target is missing, empty or not a string
        InvalidHandlerError: If the handler is missing or None
    """
    target = declaration.get("target")
    if not (isinstance(target, str) and target.strip(REFERENCE_MARKER + OPTIONAL_MARKER)):
        raise InvalidTargetError(f'{kind} "{owner}" defines an invalid target "{target}"')
    if declaration.get("handler") is None:
        raise InvalidHandlerError(f'{kind} "{owner}" defines an invalid handler')

    return Action(
        name=name,
        target=target,
        handler=declaration["handler"],
        trace=declaration.get("trace"),
        meta={k: v for k, v in declaration.items() if k not in ACTION_KEYS},
    )
