"""
Binding descriptors: the flat, normalized output of graph compilation.

A runtime interprets these descriptors; nothing here calls user code.
"""

from __future__ import annotations

import inspect
from collections.abc import Callable, Iterator
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from ..errors import Location
from .keys import ParamTag, TagSet, type_name


class BindingKind(Enum):
    """How a provide binding produces its value."""

    CONSTRUCTOR = "constructor"
    VALUE = "value"


class HookKind(Enum):
    """Lifecycle phase of a hook binding."""

    START = "start"
    STOP = "stop"


@dataclass(frozen=True)
class Param:
    """
    One parameter slot.

    For grouped slots ``type`` is the element type and the runtime passes a list
    (or spreads it into a variadic parameter).
    """

    name: str
    type: Any
    tag: ParamTag = field(default_factory=ParamTag)
    kind: inspect._ParameterKind = inspect.Parameter.POSITIONAL_OR_KEYWORD
    has_default: bool = False
    # Dependency bundles (`In` subclasses) resolve field by field.
    fields: tuple[Param, ...] = ()

    @property
    def tag_set(self) -> TagSet:
        return TagSet(self.type, self.tag.name, self.tag.group)

    @property
    def optional(self) -> bool:
        return self.tag.optional or self.has_default

    def with_tag(self, tag: ParamTag) -> Param:
        return Param(self.name, self.type, tag, self.kind, self.has_default, self.fields)

    def __str__(self) -> str:
        tag = str(self.tag)
        base = f"{self.name}: {type_name(self.type)}"
        return f"{base} `{tag}`" if tag else base


def call_with(function: Callable[..., Any], params: tuple[Param, ...], values: list[Any]) -> Any:
    """Call ``function`` mapping resolved values onto their parameter kinds."""
    args: list[Any] = []
    kwargs: dict[str, Any] = {}
    for param, value in zip(params, values, strict=True):
        if value is _OMIT:
            continue
        if param.kind == inspect.Parameter.VAR_POSITIONAL:
            args.extend(value if param.tag.group is not None else [value])
        elif param.kind == inspect.Parameter.POSITIONAL_ONLY:
            args.append(value)
        else:
            kwargs[param.name] = value
    return function(*args, **kwargs)


class _Omit:
    def __repr__(self) -> str:
        return "OMIT"


# Marker for a parameter left to its declared default.
_OMIT: Any = _Omit()
OMIT = _OMIT


@dataclass(frozen=True)
class ProvideBinding:
    """Publish a constructed (or literal) value under one or more tag sets."""

    kind: BindingKind
    target: Any
    params: tuple[Param, ...]
    exports: tuple[TagSet, ...]
    private: bool = False
    scope: tuple[str, ...] = ()
    metadata: tuple[Any, ...] = ()
    location: Location | None = None

    def __str__(self) -> str:
        exports = ", ".join(str(ts) for ts in self.exports)
        if self.kind == BindingKind.VALUE:
            impl = repr(self.target)
        else:
            impl = getattr(self.target, "__qualname__", repr(self.target))
        return f"[{exports}] -> {impl} ({self.kind.value})"


@dataclass(frozen=True)
class DecorateBinding:
    """Transform the value published under ``target`` before consumers see it."""

    function: Callable[..., Any]
    params: tuple[Param, ...]
    target: TagSet
    scope: tuple[str, ...] = ()
    location: Location | None = None


@dataclass(frozen=True)
class InvokeBinding:
    """Call a function with resolved arguments when the runtime starts."""

    function: Callable[..., Any]
    params: tuple[Param, ...]
    scope: tuple[str, ...] = ()
    location: Location | None = None


@dataclass(frozen=True)
class PopulateBinding:
    """Resolve one value and store it into a caller-owned reference."""

    ref: Any
    param: Param
    scope: tuple[str, ...] = ()
    location: Location | None = None


@dataclass(frozen=True)
class HookBinding:
    """Register a lifecycle start or stop hook."""

    kind: HookKind
    function: Callable[..., Any]
    wants_lifecycle: bool = False
    scope: tuple[str, ...] = ()
    location: Location | None = None


CompiledBinding = ProvideBinding | DecorateBinding | InvokeBinding | PopulateBinding | HookBinding


@dataclass(frozen=True)
class CompiledGraph:
    """The ordered flat binding list produced by ``App.build()``."""

    bindings: tuple[CompiledBinding, ...]

    def __iter__(self) -> Iterator[CompiledBinding]:
        return iter(self.bindings)

    def __len__(self) -> int:
        return len(self.bindings)

    def provides(self) -> list[ProvideBinding]:
        return [b for b in self.bindings if isinstance(b, ProvideBinding)]

    def decorators(self) -> list[DecorateBinding]:
        return [b for b in self.bindings if isinstance(b, DecorateBinding)]

    def exports(self) -> list[TagSet]:
        """All exported tag sets, in binding order."""
        return [ts for b in self.provides() for ts in b.exports]
