"""
Binding and parameter options.

Options are collected into a ``BindConfig`` (for ``Provide``/``Supply``/
``Replace``/``Default``) or a ``ParamConfig`` (for ``Invoke``/``Populate``/
``Decorate``). The first error recorded on a config short-circuits every later
option, so the first structural mistake is the one reported.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field
from enum import IntEnum
from typing import Any

from .errors import DeclarationError, Location, NodewireError, caller_location
from .model.keys import ParamTag

METADATA_GROUP = "di:metadata"


def default_group_name(contract: Any) -> str:
    return getattr(contract, "__name__", str(contract)).lower()


@dataclass
class ExportSpec:
    """One export added by ``As`` (or a pending name/group)."""

    type: Any
    name: str | None = None
    group: str | None = None


@dataclass
class AutoGroupRule:
    """Exports bindings satisfying ``contract`` into ``group``."""

    contract: Any
    group: str
    filter: Callable[[Any], bool] | None = None
    as_self: bool = False

    @property
    def key(self) -> tuple[Any, str]:
        return (self.contract, self.group)


@dataclass
class AutoGroupOverride:
    """Adjusts filter or self-export of auto-group rules on one binding."""

    contract: Any = None
    group: str | None = None
    filter: Callable[[Any], bool] | None = None
    as_self: bool = False

    def matches(self, rule: AutoGroupRule) -> bool:
        if self.contract is not None and self.contract is not rule.contract:
            return False
        return self.group is None or self.group == rule.group


@dataclass
class ParamConfig:
    """Positional parameter tags and the diagnostics that go with them."""

    tags: list[ParamTag | None] = field(default_factory=list)
    params_set: bool = False
    slots: int = 0
    variadic_shorthand: bool = False
    selectors: int = 0
    location: Location | None = None
    error: NodewireError | None = None

    def fail(self, error: NodewireError) -> None:
        if self.error is None:
            self.error = error


@dataclass
class BindConfig:
    """Everything the options of one bind declaration say about it."""

    exports: list[ExportSpec] = field(default_factory=list)
    include_self: bool = False
    private: bool | None = None
    metadata: list[Any] = field(default_factory=list)
    pending_name: str | None = None
    pending_group: str | None = None
    tagged_as: bool = False
    auto_groups: list[AutoGroupRule] = field(default_factory=list)
    auto_group_overrides: list[AutoGroupOverride] = field(default_factory=list)
    auto_group_ignores: set[tuple[Any, str]] = field(default_factory=set)
    ignore_auto_groups: bool = False
    ignore_auto_inject: bool = False
    params: ParamConfig = field(default_factory=ParamConfig)
    error: NodewireError | None = None

    def fail(self, error: NodewireError) -> None:
        if self.error is None:
            self.error = error

    @property
    def has_pending(self) -> bool:
        return self.pending_name is not None or self.pending_group is not None


class Option:
    """Base class for options; each applies to bind and/or param configs."""

    def apply_bind(self, cfg: BindConfig) -> None:  # noqa: ARG002
        return None

    def apply_param(self, cfg: ParamConfig) -> None:  # noqa: ARG002
        return None


def _blank(value: Any) -> bool:
    return not isinstance(value, str) or not value.strip()


class As(Option):
    """
    Export the binding as ``target``.

    Extra tags fan out into one export each: a ``str`` or ``Name`` is a name,
    a ``Group`` is a group. Without tags a single untagged export is added.
    """

    def __init__(self, target: Any, *tags: Any):
        self.target = target
        self.tags = tags

    def apply_bind(self, cfg: BindConfig) -> None:
        if cfg.error is not None:
            return
        if self.target is None:
            cfg.fail(DeclarationError("As requires a target type"))
            return
        specs: list[ExportSpec] = []
        for tag in self.tags:
            if isinstance(tag, str):
                tag = Name(tag)
            if isinstance(tag, Name):
                if _blank(tag.value):
                    cfg.fail(DeclarationError("name must not be empty"))
                    return
                specs.append(ExportSpec(self.target, name=tag.value))
            elif isinstance(tag, Group):
                if _blank(tag.value):
                    cfg.fail(DeclarationError("group must not be empty"))
                    return
                specs.append(ExportSpec(self.target, group=tag.value))
            else:
                cfg.fail(DeclarationError(f"As tag must be a name or a group, got {tag!r}"))
                return
        if specs:
            cfg.tagged_as = True
            cfg.exports.extend(specs)
        else:
            cfg.exports.append(ExportSpec(self.target))

    def __repr__(self) -> str:
        return f"As({getattr(self.target, '__name__', self.target)})"


class Name(Option):
    """Name the last export, the base export, or a parameter slot."""

    def __init__(self, value: str):
        self.value = value

    def apply_bind(self, cfg: BindConfig) -> None:
        if cfg.error is not None:
            return
        if _blank(self.value):
            cfg.fail(DeclarationError("name must not be empty"))
            return
        if cfg.exports:
            last = cfg.exports[-1]
            last.name, last.group = self.value, None
            return
        if cfg.pending_name is not None:
            cfg.fail(
                DeclarationError(f"name already set to {cfg.pending_name!r}, cannot set {self.value!r}")
            )
            return
        cfg.pending_name = self.value

    def apply_param(self, cfg: ParamConfig) -> None:
        if cfg.error is not None:
            return
        if _blank(self.value):
            cfg.fail(DeclarationError("name must not be empty"))
            return
        cfg.selectors += 1
        cfg.tags.append(ParamTag(name=self.value))

    def __eq__(self, other: object) -> bool:
        return isinstance(other, Name) and other.value == self.value

    def __hash__(self) -> int:
        return hash(("name", self.value))

    def __repr__(self) -> str:
        return f"Name({self.value!r})"


class Group(Option):
    """Group the last export, the base export, or a parameter slot."""

    def __init__(self, value: str):
        self.value = value

    def apply_bind(self, cfg: BindConfig) -> None:
        if cfg.error is not None:
            return
        if _blank(self.value):
            cfg.fail(DeclarationError("group must not be empty"))
            return
        if cfg.exports:
            last = cfg.exports[-1]
            last.group, last.name = self.value, None
            return
        if cfg.pending_group is not None:
            cfg.fail(
                DeclarationError(f"group already set to {cfg.pending_group!r}, cannot set {self.value!r}")
            )
            return
        cfg.pending_group = self.value

    def apply_param(self, cfg: ParamConfig) -> None:
        if cfg.error is not None:
            return
        if _blank(self.value):
            cfg.fail(DeclarationError("group must not be empty"))
            return
        cfg.selectors += 1
        cfg.tags.append(ParamTag(group=self.value))

    def __eq__(self, other: object) -> bool:
        return isinstance(other, Group) and other.value == self.value

    def __hash__(self) -> int:
        return hash(("group", self.value))

    def __repr__(self) -> str:
        return f"Group({self.value!r})"


class ToGroup(Option):
    """Move the most recent ``As`` export into a group."""

    def __init__(self, group: str):
        self.group = group

    def apply_bind(self, cfg: BindConfig) -> None:
        if cfg.error is not None:
            return
        if _blank(self.group):
            cfg.fail(DeclarationError("group must not be empty"))
            return
        if not cfg.exports:
            cfg.fail(DeclarationError("ToGroup requires a preceding As"))
            return
        last = cfg.exports[-1]
        last.group, last.name = self.group, None


class Self(Option):
    """Export the concrete type in addition to any ``As`` exports."""

    def apply_bind(self, cfg: BindConfig) -> None:
        if cfg.error is None:
            cfg.include_self = True


AsSelf = Self


class _Visibility(Option):
    private = False

    def apply_bind(self, cfg: BindConfig) -> None:
        if cfg.error is not None:
            return
        if cfg.private is not None and cfg.private != self.private:
            cfg.fail(DeclarationError("Private and Public cannot both be set"))
            return
        cfg.private = self.private


class Private(_Visibility):
    """Restrict the binding to its declaring module and its descendants."""

    private = True


class Public(_Visibility):
    """Make the binding visible everywhere (the default)."""

    private = False


class AutoGroupIgnore(Option):
    def apply_bind(self, cfg: BindConfig) -> None:
        if cfg.error is None:
            cfg.ignore_auto_groups = True


class AutoGroupIgnoreType(Option):
    """Opt out of a single auto-group rule."""

    def __init__(self, contract: Any, group: str | None = None):
        self.contract = contract
        self.group = group or default_group_name(contract)

    def apply_bind(self, cfg: BindConfig) -> None:
        if cfg.error is None:
            cfg.auto_group_ignores.add((self.contract, self.group))


class AutoInjectIgnore(Option):
    def apply_bind(self, cfg: BindConfig) -> None:
        if cfg.error is None:
            cfg.ignore_auto_inject = True


class AutoGroupFilter(Option):
    """Narrow auto grouping of this binding to types accepted by ``predicate``."""

    def __init__(self, predicate: Callable[[Any], bool], contract: Any = None, group: str | None = None):
        self.override = AutoGroupOverride(contract, group, filter=predicate)

    def apply_bind(self, cfg: BindConfig) -> None:
        if cfg.error is None:
            cfg.auto_group_overrides.append(self.override)


class AutoGroupAsSelf(Option):
    """Keep the concrete type resolvable alongside auto grouping."""

    def __init__(self, contract: Any = None, group: str | None = None):
        self.override = AutoGroupOverride(contract, group, as_self=True)

    def apply_bind(self, cfg: BindConfig) -> None:
        if cfg.error is None:
            cfg.auto_group_overrides.append(self.override)


class AutoGroupMember(Option):
    """Membership in an auto-group rule, attached by scope propagation."""

    def __init__(self, rule: AutoGroupRule):
        self.rule = rule

    def apply_bind(self, cfg: BindConfig) -> None:
        if cfg.error is not None:
            return
        for i, existing in enumerate(cfg.auto_groups):
            if existing.key == self.rule.key:
                cfg.auto_groups[i] = self.rule
                return
        cfg.auto_groups.append(self.rule)


class Metadata(Option):
    """Attach an out-of-band metadata value to the produced instance."""

    def __init__(self, value: Any):
        self.value = value

    def apply_bind(self, cfg: BindConfig) -> None:
        if cfg.error is not None:
            return
        if self.value is None or (isinstance(self.value, str) and not self.value.strip()):
            cfg.fail(DeclarationError("metadata must not be empty"))
            return
        cfg.metadata.append(self.value)


class PriorityLevel(IntEnum):
    """Auto-group ordering levels; lower values come first."""

    EARLIEST = -10000
    EARLIER = -5000
    NORMAL = 0
    LATER = 5000
    LATEST = 10000


@dataclass(frozen=True)
class PriorityOrder:
    index: int


@dataclass(frozen=True)
class OrderIndex:
    index: int


def between(lower: int, upper: int) -> int:
    """Return a priority level halfway between ``lower`` and ``upper``."""
    if lower == upper:
        return int(lower)
    if lower > upper:
        lower, upper = upper, lower
    return int(lower) + (int(upper) - int(lower)) // 2


class Priority(Metadata):
    """Explicit position of the binding inside its auto groups."""

    def __init__(self, level: int):
        super().__init__(PriorityOrder(int(level)))


class Optional(Option):
    """Mark a parameter slot as optional."""

    def apply_param(self, cfg: ParamConfig) -> None:
        if cfg.error is None:
            cfg.tags.append(ParamTag(optional=True))


class Skip(Option):
    """Reserve a positional slot in ``Params`` without tagging it."""

    def apply_param(self, cfg: ParamConfig) -> None:
        if cfg.error is None:
            cfg.tags.append(None)


class MetadataGroup(Group):
    """Request the ``MetadataValue`` records of all bindings carrying metadata."""

    def __init__(self) -> None:
        super().__init__(METADATA_GROUP)


class Both(Option):
    """Apply several options together, to both bind and param configs."""

    def __init__(self, *options: Option):
        self.options = options

    def apply_bind(self, cfg: BindConfig) -> None:
        for opt in self.options:
            if cfg.error is not None:
                return
            opt.apply_bind(cfg)

    def apply_param(self, cfg: ParamConfig) -> None:
        for opt in self.options:
            if cfg.error is not None:
                return
            opt.apply_param(cfg)


def collect_param_tags(items: tuple[Any, ...]) -> list[ParamTag | None]:
    """
    Turn ``Params`` items into one slot tag each.

    Raises:
        DeclarationError: If an item is not ``None``, a name string, a
            ``ParamTag`` or an option.
    """
    tags: list[ParamTag | None] = []
    for item in items:
        if item is None or isinstance(item, Skip):
            tags.append(None)
        elif isinstance(item, ParamTag):
            tags.append(item)
        elif isinstance(item, str):
            if not item.strip():
                raise DeclarationError("name must not be empty")
            tags.append(ParamTag(name=item))
        elif isinstance(item, Option):
            pc = ParamConfig()
            item.apply_param(pc)
            if pc.error is not None:
                raise pc.error
            merged = ParamTag()
            for tag in pc.tags:
                if tag is not None:
                    merged = merged.merge(tag)
            tags.append(None if merged.is_empty() else merged)
        else:
            raise DeclarationError(f"unsupported Params item {item!r}")
    return tags


class Params(Option):
    """
    Positional parameter tags.

    Each item tags one slot: ``None``/``Skip()`` leaves it untagged, a string
    names it, an option or ``ParamTag`` tags it.
    """

    def __init__(self, *items: Any):
        self.items = items
        self.location = caller_location()

    def _apply(self, cfg: ParamConfig) -> None:
        if cfg.error is not None:
            return
        cfg.params_set = True
        cfg.slots += len(self.items)
        cfg.location = self.location
        try:
            cfg.tags.extend(collect_param_tags(self.items))
        except DeclarationError as e:
            cfg.fail(e.with_location(self.location))

    def apply_bind(self, cfg: BindConfig) -> None:
        if cfg.error is None:
            self._apply(cfg.params)
            if cfg.params.error is not None:
                cfg.fail(cfg.params.error)

    def apply_param(self, cfg: ParamConfig) -> None:
        self._apply(cfg)


class Variadic(Option):
    """Tag the variadic parameter; the preceding slots stay untagged."""

    def __init__(self, *items: Any):
        self.items = items
        self.location = caller_location()

    def apply_param(self, cfg: ParamConfig) -> None:
        if cfg.error is not None:
            return
        try:
            tags = collect_param_tags(self.items)
        except DeclarationError as e:
            cfg.fail(e.with_location(self.location))
            return
        if len(tags) != 1:
            cfg.fail(
                DeclarationError(
                    f"Variadic expects exactly one tag, got {len(tags)}", location=self.location
                )
            )
            return
        if cfg.params_set and not cfg.variadic_shorthand and cfg.slots > 0:
            cfg.fail(
                DeclarationError("Variadic cannot be combined with Params", location=self.location)
            )
            return
        cfg.params_set = True
        cfg.variadic_shorthand = True
        cfg.location = self.location
        cfg.tags.append(tags[0])

    def apply_bind(self, cfg: BindConfig) -> None:
        if cfg.error is None:
            self.apply_param(cfg.params)
            if cfg.params.error is not None:
                cfg.fail(cfg.params.error)


class VariadicGroup(Variadic):
    """Tag the variadic parameter as a group dependency."""

    def __init__(self, group: str):
        super().__init__(Group(group))
