"""
Declaration nodes.

A graph is authored as a tree of nodes. Leaves declare bindings, invokes and
hooks; containers (``Module``, ``Options``, conditionals, ``Switch``) group
them. Compilation never mutates authored nodes: passes work on copies made
with ``Node.evolve``.
"""

from __future__ import annotations

import copy
import inspect
from collections.abc import Callable, Iterable
from enum import Enum
from typing import Any, Generic, TypeVar

from .errors import DeclarationError, Location, NodewireError, UnsupportedNodeError, caller_location
from .model.bindings import HookKind
from .model.keys import TagSet
from .options import AutoGroupRule, Option, default_group_name

T = TypeVar("T")


class Node:
    """Base class of all declaration nodes."""

    location: Location | None = None

    def evolve(self: Any, **changes: Any) -> Any:
        """Return a shallow copy with some attributes replaced."""
        clone = copy.copy(self)
        for key, value in changes.items():
            setattr(clone, key, value)
        return clone


class ErrorNode(Node):
    """A structurally invalid declaration; raised when the tree is compiled."""

    def __init__(self, error: NodewireError):
        self.error = error
        self.location = error.location

    def __repr__(self) -> str:
        return f"ErrorNode({self.error.message!r})"


def collect_nodes(items: Iterable[Any]) -> list[Node]:
    """Flatten nested lists of nodes, skipping ``None``."""
    out: list[Node] = []
    for item in items:
        if item is None:
            continue
        if isinstance(item, Node):
            out.append(item)
        elif isinstance(item, list | tuple):
            out.extend(collect_nodes(item))
        else:
            out.append(
                ErrorNode(
                    UnsupportedNodeError(
                        f"unsupported node type {type(item).__name__}", location=caller_location()
                    )
                )
            )
    return out


class Provide(Node):
    """Bind a constructor: a class, or a callable with a return annotation."""

    def __init__(self, constructor: Any, *options: Any):
        self.constructor = constructor
        self.options = options
        self.location = caller_location()
        # Set by override resolution.
        self.exports_override: tuple[TagSet, ...] | None = None
        self.param_rewrites: dict[TagSet, TagSet] = {}

    def __repr__(self) -> str:
        return f"Provide({getattr(self.constructor, '__qualname__', self.constructor)!r})"


class Supply(Node):
    """Bind an already constructed value."""

    def __init__(self, value: Any, *options: Any):
        self.value = value
        self.options = options
        self.location = caller_location()
        self.exports_override: tuple[TagSet, ...] | None = None

    def __repr__(self) -> str:
        return f"Supply({self.value!r})"


BindNode = Provide | Supply


class Module(Node):
    """A named scope; auto-group and auto-inject rules do not leak out of it."""

    def __init__(self, name: str, *nodes: Any):
        self.name = name
        self.nodes = collect_nodes(nodes)
        self.location = caller_location()

    def __repr__(self) -> str:
        return f"Module({self.name!r}, {len(self.nodes)} nodes)"


class Options(Node, Option):
    """
    A transparent group of nodes.

    Inside ``Provide``/``Supply``/``Invoke`` options it acts as a bundle of
    options instead.
    """

    def __init__(self, *nodes: Any):
        self.items = nodes
        self.nodes = collect_nodes(n for n in nodes if not _is_plain_option(n))
        self.location = caller_location()

    def option_items(self) -> list[Any]:
        return list(self.items)


def _is_plain_option(item: Any) -> bool:
    return isinstance(item, Option) and not isinstance(item, Node)


class ConditionMode(Enum):
    IF = "If"
    WHEN = "When"


class Conditional(Node):
    """Child nodes included only when a condition holds; evaluated once per build."""

    def __init__(self, mode: ConditionMode, condition: Any, nodes: tuple[Any, ...]):
        self.mode = mode
        self.condition = condition
        self.nodes = collect_nodes(nodes)
        self.location = caller_location()
        self.resolver: Callable[[Any], Any] | None = None
        self.memo: list[bool] = []

    def reset(self, resolver: Callable[[Any], Any] | None) -> Conditional:
        return self.evolve(resolver=resolver, memo=[])

    def __repr__(self) -> str:
        return f"{self.mode.value}({len(self.nodes)} nodes)"


def If(condition: bool, *nodes: Any) -> Conditional:
    """Include ``nodes`` when ``condition`` is true."""
    return Conditional(ConditionMode.IF, bool(condition), nodes)


def When(predicate: Callable[..., bool], *nodes: Any) -> Node:
    """
    Include ``nodes`` when ``predicate`` returns true.

    The predicate's parameters are resolved from the app's configuration
    resolver.
    """
    if not callable(predicate):
        return ErrorNode(DeclarationError("When requires a callable predicate", location=caller_location()))
    return Conditional(ConditionMode.WHEN, predicate, nodes)


class Case:
    """One branch of a ``Switch``."""

    def __init__(self, condition: Any, *nodes: Any):
        self.mode = ConditionMode.IF
        self.condition = condition
        self.nodes = collect_nodes(nodes)
        self.location = caller_location()

    def __repr__(self) -> str:
        return f"Case({self.condition!r})"


def WhenCase(predicate: Callable[..., bool], *nodes: Any) -> Case:
    """A ``Switch`` branch selected by a predicate resolved like ``When``."""
    case = Case(predicate, *nodes)
    case.mode = ConditionMode.WHEN
    return case


class DefaultCase:
    """The ``Switch`` branch taken when no case matches."""

    def __init__(self, *nodes: Any):
        self.nodes = collect_nodes(nodes)


class Switch(Node):
    """Include the nodes of the first matching case, or of the default case."""

    def __init__(self, *items: Any):
        self.cases: list[Case] = []
        self.default: DefaultCase | None = None
        self.error: NodewireError | None = None
        self.location = caller_location()
        self.resolver: Callable[[Any], Any] | None = None
        self.memo: list[int] = []
        for item in items:
            if isinstance(item, Case):
                self.cases.append(item)
            elif isinstance(item, DefaultCase):
                if self.default is not None:
                    self.error = DeclarationError("Switch accepts at most one DefaultCase", location=self.location)
                    break
                self.default = item
            else:
                self.error = UnsupportedNodeError(
                    f"unsupported Switch item {type(item).__name__}", location=self.location
                )
                break

    def reset(self, resolver: Callable[[Any], Any] | None) -> Switch:
        return self.evolve(resolver=resolver, memo=[])

    def branches(self) -> list[list[Node]]:
        out = [case.nodes for case in self.cases]
        if self.default is not None:
            out.append(self.default.nodes)
        return out

    def with_branches(self, branches: list[list[Node]]) -> Switch:
        cases = [copy.copy(case) for case in self.cases]
        for case, nodes in zip(cases, branches, strict=False):
            case.nodes = nodes
        default = self.default
        if default is not None:
            default = copy.copy(default)
            default.nodes = branches[len(cases)]
        return self.evolve(cases=cases, default=default)


class ReplaceMode(Enum):
    ALL = "all"
    BEFORE = "before"
    AFTER = "after"


def _as_bind_node(target: Any, options: tuple[Any, ...], location: Location | None) -> BindNode:
    if isinstance(target, Provide | Supply):
        node = target.evolve(options=tuple(target.options) + tuple(options))
    elif inspect.isclass(target) or inspect.isfunction(target) or inspect.ismethod(target):
        node = Provide(target, *options)
    else:
        node = Supply(target, *options)
    node.location = location
    return node


class Replace(Node):
    """
    Override the bindings this target's tag sets match.

    ``target`` is a class or function (bound as a constructor), a value, or an
    explicit ``Provide``/``Supply`` node.
    """

    is_default = False

    def __init__(self, target: Any, *options: Any, mode: ReplaceMode = ReplaceMode.ALL):
        self.location = caller_location()
        self.mode = mode
        self.node = _as_bind_node(target, options, self.location)

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.node!r}, mode={self.mode.value})"


def ReplaceBefore(target: Any, *options: Any) -> Replace:
    """Override only for nodes declared before this one in the same scope."""
    return Replace(target, *options, mode=ReplaceMode.BEFORE)


def ReplaceAfter(target: Any, *options: Any) -> Replace:
    """Override only for nodes declared after this one in the same scope."""
    return Replace(target, *options, mode=ReplaceMode.AFTER)


class Default(Replace):
    """Provide a fallback used only when nothing else binds the tag set."""

    is_default = True

    def __init__(self, target: Any, *options: Any):
        super().__init__(target, *options, mode=ReplaceMode.ALL)


class Decorate(Node, Option):
    """Transform a bound value before consumers receive it."""

    def __init__(self, function: Callable[..., Any], *options: Any):
        self.function = function
        self.options = options
        self.location = caller_location()

    def __repr__(self) -> str:
        return f"Decorate({getattr(self.function, '__qualname__', self.function)!r})"


class AutoGroup(Node):
    """Export every binding in scope that satisfies ``contract`` into a group."""

    def __init__(
        self,
        contract: type,
        group: str | None = None,
        *,
        filter: Callable[[Any], bool] | None = None,
        as_self: bool = False,
    ):
        self.location = caller_location()
        self.error: NodewireError | None = None
        if not inspect.isclass(contract):
            self.error = DeclarationError(
                f"AutoGroup expects a class or protocol, got {contract!r}", location=self.location
            )
        self.rule = AutoGroupRule(contract, group or default_group_name(contract), filter, as_self)

    def __repr__(self) -> str:
        return f"AutoGroup({self.rule.contract!r}, {self.rule.group!r})"


class AutoInject(Node):
    """Enable field injection for subsequent bindings in this scope."""

    def __init__(self) -> None:
        self.location = caller_location()


class Invoke(Node):
    """Call ``function`` with resolved dependencies when the runtime starts."""

    def __init__(self, function: Callable[..., Any], *options: Any):
        self.function = function
        self.options = options
        self.location = caller_location()
        self.param_rewrites: dict[TagSet, TagSet] = {}

    def __repr__(self) -> str:
        return f"Invoke({getattr(self.function, '__qualname__', self.function)!r})"


class Ref(Generic[T]):
    """A caller-owned slot filled by ``Populate``."""

    def __init__(self, target_type: type[T] | Any):
        self.type = target_type
        self._value: Any = _UNSET

    @property
    def is_set(self) -> bool:
        return self._value is not _UNSET

    @property
    def value(self) -> T:
        if self._value is _UNSET:
            raise LookupError(f"Ref[{getattr(self.type, '__name__', self.type)}] is not populated")
        return self._value

    def set(self, value: Any) -> None:
        self._value = value

    def __repr__(self) -> str:
        return f"Ref({getattr(self.type, '__name__', self.type)})"


_UNSET = object()


class Populate(Node):
    """Resolve values into ``Ref`` holders once the runtime starts."""

    def __init__(self, *args: Any):
        self.targets: list[Ref[Any]] = []
        self.options: list[Any] = []
        self.location = caller_location()
        self.param_rewrites: dict[TagSet, TagSet] = {}
        self.error: NodewireError | None = None
        for arg in args:
            if isinstance(arg, Ref):
                self.targets.append(arg)
            elif isinstance(arg, Option):
                self.options.append(arg)
            else:
                self.error = DeclarationError(
                    f"Populate targets must be Ref instances, got {arg!r}", location=self.location
                )
                return
        if not self.targets:
            self.error = DeclarationError("Populate requires at least one Ref", location=self.location)
        elif self.options and len(self.targets) > 1:
            self.error = DeclarationError(
                "Populate tags require a single target", location=self.location
            )


class Hook(Node):
    """A lifecycle hook registered with the runtime."""

    def __init__(self, kind: HookKind, function: Callable[..., Any]):
        self.kind = kind
        self.function = function
        self.location = caller_location()


def OnStart(function: Callable[..., Any]) -> Hook:
    """Run ``function`` when the runtime starts."""
    return Hook(HookKind.START, function)


def OnStop(function: Callable[..., Any]) -> Hook:
    """Run ``function`` when the runtime stops, in reverse registration order."""
    return Hook(HookKind.STOP, function)


def child_lists(node: Node) -> list[list[Node]]:
    """All child node lists of a container, including inactive branches."""
    match node:
        case Module() | Options() | Conditional():
            return [node.nodes]
        case Switch():
            return node.branches()
    return []


def map_children(node: Node, transform: Callable[[list[Node]], list[Node]]) -> Node:
    """Copy a container with every child list passed through ``transform``."""
    match node:
        case Module() | Options() | Conditional():
            return node.evolve(nodes=transform(node.nodes))
        case Switch():
            return node.with_branches([transform(branch) for branch in node.branches()])
    return node
