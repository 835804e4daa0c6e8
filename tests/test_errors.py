"""Tests for forrest error classes.

Tests cover:
- Error hierarchy
- UnknownTargetError message and name
- Path lookup errors are KeyErrors with a readable message
"""

import pytest
from forrest.errors import (
    ConfigNotFoundError,
    ContextNotFoundError,
    ForrestError,
    InvalidActionError,
    InvalidHandlerError,
    InvalidTargetError,
    PathNotFoundError,
    UnknownTargetError,
)


class TestForrestError:
    """Tests for base ForrestError."""

    def test_is_exception(self):
        """ForrestError should be an Exception."""
        assert issubclass(ForrestError, Exception)

    def test_has_message(self):
        """ForrestError should have a message."""
        assert str(ForrestError("my message")) == "my message"


class TestUnknownTargetError:
    """Tests for UnknownTargetError."""

    def test_is_forrest_error(self):
        assert issubclass(UnknownTargetError, ForrestError)

    def test_message_carries_bare_name(self):
        """Message is 'Unknown target "NAME"'."""
        error = UnknownTargetError("S1")
        assert str(error) == 'Unknown target "S1"'
        assert error.name == "S1"

    def test_can_be_caught_as_forrest_error(self):
        with pytest.raises(ForrestError):
            raise UnknownTargetError("S1")


class TestInvalidActionError:
    """Tests for the InvalidActionError family."""

    def test_subclasses(self):
        assert issubclass(InvalidTargetError, InvalidActionError)
        assert issubclass(InvalidHandlerError, InvalidActionError)
        assert issubclass(InvalidActionError, ForrestError)


class TestPathNotFoundError:
    """Tests for path lookup errors."""

    def test_is_key_error(self):
        """Lookup errors can be caught as KeyError."""
        assert issubclass(PathNotFoundError, KeyError)
        assert issubclass(ConfigNotFoundError, PathNotFoundError)
        assert issubclass(ContextNotFoundError, PathNotFoundError)

    def test_message_is_not_quoted_twice(self):
        """str() does not use KeyError's repr formatting."""
        error = ConfigNotFoundError("db.host")
        assert str(error) == 'path "db.host" does not exist'
        assert error.path == "db.host"

    def test_caught_as_key_error(self):
        with pytest.raises(KeyError):
            raise ContextNotFoundError("a.b")
