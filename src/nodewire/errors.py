"""
Error taxonomy for graph compilation and the reference runtime.
"""

from __future__ import annotations

import inspect
import os
import sys
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

_PACKAGE_DIR = os.path.dirname(os.path.abspath(__file__))


@dataclass(frozen=True)
class Location:
    """A source position, rendered as ``file:line``."""

    filename: str
    lineno: int

    def __str__(self) -> str:
        return f"{self.filename}:{self.lineno}"


def caller_location() -> Location | None:
    """
    Find the first stack frame outside this package.

    Dataclass-generated ``__init__`` frames are skipped as well, so a node
    constructed by user code reports the user's line.
    """
    frame = sys._getframe(1)
    while frame is not None:
        filename = frame.f_code.co_filename
        if not filename.startswith(_PACKAGE_DIR) and filename != "<string>":
            return Location(filename, frame.f_lineno)
        frame = frame.f_back
    return None


def definition_location(target: Any) -> Location | None:
    """Return where a function or class is defined, if it can be determined."""
    fn: Callable[..., Any] | Any = target
    if inspect.isclass(target):
        fn = target.__dict__.get("__init__", target)
    fn = inspect.unwrap(fn) if callable(fn) else fn
    code = getattr(fn, "__code__", None)
    if code is not None:
        return Location(code.co_filename, code.co_firstlineno)
    try:
        filename = inspect.getsourcefile(target)
        _, lineno = inspect.getsourcelines(target)
    except (OSError, TypeError):
        return None
    if filename is None:
        return None
    return Location(filename, lineno)


class NodewireError(Exception):
    """Base class for all errors raised by nodewire."""

    def __init__(
        self,
        message: str,
        *,
        location: Location | None = None,
        target_location: Location | None = None,
    ):
        self.message = message
        self.location = location
        self.target_location = target_location
        super().__init__(self._render())

    def _render(self) -> str:
        lines = [self.message]
        if self.location is not None:
            lines.append(f"{self.location}: di wiring")
        if self.target_location is not None and self.target_location != self.location:
            lines.append(f"{self.target_location}: target signature")
        return "\n".join(lines)

    def with_location(
        self, location: Location | None, target_location: Location | None = None
    ) -> NodewireError:
        """Fill in positional context that is still missing and return ``self``."""
        if self.location is None:
            self.location = location
        if self.target_location is None:
            self.target_location = target_location
        self.args = (self._render(),)
        return self


class DeclarationError(NodewireError):
    """Conflicting, missing or malformed options on a declaration."""


class OverrideError(NodewireError):
    """A Replace or Default that cannot be satisfied or carries forbidden options."""


class SignatureError(NodewireError):
    """A callable whose shape does not fit its declaration."""


class UnsupportedNodeError(NodewireError):
    """A node or option found in a position that does not accept it."""


class ConfigResolutionError(NodewireError):
    """The configuration resolver cannot provide a value for a requested type."""


class MissingBindingError(NodewireError):
    """Raised by the runtime when a required binding is not found."""

    def __init__(self, key: Any, dependent: Any | None = None):
        self.key = key
        self.dependent = dependent
        msg = f"No binding found for {key}"
        if dependent:
            msg += f" (required by {dependent})"
        super().__init__(msg)


class CircularDependencyError(NodewireError):
    """Raised by the runtime when circular dependencies are detected."""

    def __init__(self, cycle: list[Any]):
        self.cycle = cycle
        cycle_str = " -> ".join(str(key) for key in cycle)
        super().__init__(f"Circular dependency detected: {cycle_str}")


class DuplicateBindingError(NodewireError):
    """Raised by the runtime when two visible bindings publish the same tag set."""

    def __init__(self, key: Any, locations: list[Location | None]):
        self.key = key
        where = ", ".join(str(loc) for loc in locations if loc is not None)
        msg = f"{key} is provided more than once"
        if where:
            msg += f" ({where})"
        super().__init__(msg)
