"""
forrest - Application bootstrap lifecycle engine

Assembles an app from services and features, then boots it through a fixed
sequence of lifecycle targets. Integrations extend the app by attaching
actions to targets and by declaring targets of their own.
"""

__version__ = "0.1.0"
__author__ = "Local Pipeline Team"


__all__ = [
    "App",
    "AppResult",
    "create_app",
    "start_app",
    "run_app",
    "Context",
    "Action",
    "ActionResult",
    "Mode",
    "ForrestError",
    "UnknownTargetError",
    "InvalidActionError",
    "ConfigNotFoundError",
    "ContextNotFoundError",
]

from .actions import Action
from .app import App, AppResult, create_app, run_app, start_app
from .context import Context
from .errors import (
    ConfigNotFoundError,
    ContextNotFoundError,
    ForrestError,
    InvalidActionError,
    UnknownTargetError,
)
from .invoke import ActionResult, Mode
