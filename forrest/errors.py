"""
Error classes for the forrest lifecycle engine.

Error kinds and where they surface:
- UnknownTargetError: a required target reference ($NAME) was never declared.
  Fatal, aborts the boot.
- InvalidActionError: a declarative action or integration has an unusable
  shape. Fatal at load time.
- ConfigNotFoundError / ContextNotFoundError: a path lookup found nothing and
  no default was given. Raised at the call site, so a handler may catch it.

Error handling contract:
- Errors are exceptions, not values
- Handler errors propagate unchanged, they are never wrapped
- Nothing is retried
"""


class ForrestError(Exception):
    """Base exception for forrest."""
    pass


class UnknownTargetError(ForrestError):
    """
    Raised when a required target reference cannot be resolved.

    The message always carries the bare target name (without the `$`
    reference marker or the `?` optional marker):

        Unknown target "S1"
    """

    def __init__(self, name: str):
        self.name = name
        super().__init__(f'Unknown target "{name}"')


class InvalidActionError(ForrestError):
    """
    An integration declared something that cannot become an Action.

    Examples:
    - A declarative action without a target
    - A declarative action without a handler
    - A service that is neither callable nor a declarative action
    """
    pass


class InvalidTargetError(InvalidActionError):
    """A declarative action defines a missing or non-string target."""
    pass


class InvalidHandlerError(InvalidActionError):
    """A declarative action defines no handler."""
    pass


class PathNotFoundError(ForrestError, KeyError):
    """A dotted path does not exist in a tree and no default was given."""

    def __init__(self, path: str):
        self.path = path
        super().__init__(f'path "{path}" does not exist')

    def __str__(self) -> str:
        # KeyError would repr() the message
        return self.args[0]


class ConfigNotFoundError(PathNotFoundError):
    """get_config() found no value and no default at the given path."""
    pass


class ContextNotFoundError(PathNotFoundError):
    """get_context() found no value and no default at the given path."""
    pass
