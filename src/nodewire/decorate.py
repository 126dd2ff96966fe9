"""
Decorator collection and composition.

A ``Decorate`` declared in a node list applies to the tag sets produced in
that list and its nested scopes; one embedded in a ``Provide``/``Supply``
applies to that binding. A single ``Name``/``Group`` option selects the target
explicitly instead.

The first parameter receives the decorated value. Its annotation picks the
target type; ``list[C]`` (or another collection of ``C``) makes a group-level
decorator receiving the whole group. A plain decorator hitting a group is
applied element by element.

All decorators of one tag set are merged into a single ``DecorateBinding``
that runs them in declaration order.
"""

from __future__ import annotations

import inspect
import logging
from collections.abc import Callable
from dataclasses import dataclass, replace
from typing import Any

from .binding_spec import bind_spec, parse_param_options
from .conditions import active_children
from .errors import DeclarationError, NodewireError, SignatureError, definition_location
from .introspection import (
    apply_param_config,
    callable_name,
    element_type,
    expand_bundles,
    is_bundle,
    signature_of,
    signature_params,
)
from .model.bindings import OMIT, DecorateBinding, Param, call_with
from .model.keys import ParamTag, TagSet
from .nodes import Decorate, Module, Node, Provide, Supply
from .options import Group, Name

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DecoratorEntry:
    decorate: Decorate
    candidates: tuple[TagSet, ...]
    scope: tuple[str, ...]


@dataclass(frozen=True)
class DecoratorShape:
    """A validated decorator signature."""

    function: Callable[..., Any]
    first: Param
    extras: tuple[Param, ...]
    target_type: Any
    collection: bool
    explicit: TagSet | None


def collect_decorators(nodes: list[Node], scope: tuple[str, ...] = ()) -> list[DecoratorEntry]:
    """All decorators of the active tree, each with the tag sets it may target."""
    return _collect(nodes, scope)[1]


def _collect(nodes: list[Node], scope: tuple[str, ...]) -> tuple[list[TagSet], list[DecoratorEntry]]:
    tag_sets: list[TagSet] = []
    entries: list[DecoratorEntry] = []
    local: list[Decorate] = []
    for node in nodes:
        match node:
            case Provide() | Supply():
                _, embedded, spec = bind_spec(node)
                tag_sets.extend(spec.tag_sets)
                entries.extend(DecoratorEntry(d, tuple(spec.tag_sets), scope) for d in embedded)
            case Decorate():
                local.append(node)
            case Module():
                child_sets, child_entries = _collect(node.nodes, (*scope, node.name))
                tag_sets.extend(child_sets)
                entries.extend(child_entries)
            case _:
                child_sets, child_entries = _collect(active_children(node), scope)
                tag_sets.extend(child_sets)
                entries.extend(child_entries)
    visible = tuple(dict.fromkeys(tag_sets))
    entries.extend(DecoratorEntry(d, visible, scope) for d in local)
    return tag_sets, entries


def analyze(node: Decorate) -> DecoratorShape:
    """
    Validate a decorator and split its signature into target and dependencies.

    Raises:
        SignatureError: For a non-callable, a parameterless function, a
            ``None`` return annotation, or ``Params`` mixed with a dependency
            bundle.
        DeclarationError: For more than one explicit target.
    """
    fn = node.function
    if not callable(fn):
        raise SignatureError(f"Decorate requires a callable, got {fn!r}", location=node.location)
    target_location = definition_location(fn)

    selectors = [o for o in node.options if type(o) in (Name, Group)]
    if len(selectors) > 1:
        raise DeclarationError("Decorate accepts a single Name or Group target", location=node.location)
    cfg = parse_param_options([o for o in node.options if type(o) not in (Name, Group)], node.location)

    params = signature_params(fn)
    if not params:
        raise SignatureError(
            f"decorator {callable_name(fn)} must take the decorated value as its first parameter",
            location=node.location,
            target_location=target_location,
        )
    ret = signature_of(fn).return_annotation
    if ret is None or ret is type(None):
        raise SignatureError(
            f"decorator {callable_name(fn)} must return the decorated value",
            location=node.location,
            target_location=target_location,
        )
    if cfg.params_set and any(is_bundle(p.type) for p in params):
        raise SignatureError(
            f"decorator {callable_name(fn)} mixes Params with a dependency bundle parameter",
            location=node.location,
            target_location=target_location,
        )
    params = apply_param_config(fn, params, cfg, location=node.location, label="decorator")
    first = params[0]
    elem = element_type(first.type)
    target_type = elem if elem is not None else first.type

    explicit: TagSet | None = None
    if selectors:
        sel = selectors[0]
        if isinstance(sel, Name):
            explicit = TagSet(target_type, name=sel.value)
        else:
            explicit = TagSet(target_type, group=sel.value)
    return DecoratorShape(
        function=fn,
        first=first,
        extras=tuple(expand_bundles(params[1:])),
        target_type=target_type,
        collection=elem is not None,
        explicit=explicit,
    )


def _related(a: Any, b: Any) -> bool:
    if a is b or a == b:
        return True
    if not (inspect.isclass(a) and inspect.isclass(b)):
        return False
    try:
        return issubclass(a, b) or issubclass(b, a)
    except TypeError:
        return False


def decorator_targets(shape: DecoratorShape, candidates: tuple[TagSet, ...]) -> list[TagSet]:
    if shape.explicit is not None:
        return [shape.explicit]
    out: list[TagSet] = []
    for ts in candidates:
        if ts.group is not None:
            matched = _related(ts.type, shape.target_type)
        else:
            matched = ts.type == shape.first.type
        if matched and ts not in out:
            out.append(ts)
    return out


class GroupElementDecorator:
    """Applies a single-value decorator to the matching elements of a group."""

    def __init__(self, function: Callable[..., Any], element_type: Any, contract: Any):
        self.function = function
        self.element_type = element_type
        self.contract = contract
        self.__wrapped__ = function
        self.__name__ = self.__qualname__ = f"each({callable_name(function)})"

    def _applies(self, item: Any) -> bool:
        if self.element_type is self.contract:
            return True
        try:
            return isinstance(item, self.element_type)
        except TypeError:
            return True

    def __call__(self, items: list[Any], *args: Any, **kwargs: Any) -> list[Any]:
        return [self.function(item, *args, **kwargs) if self._applies(item) else item for item in items]

    def __repr__(self) -> str:
        return self.__name__


@dataclass(frozen=True)
class _Step:
    function: Callable[..., Any]
    params: tuple[Param, ...]


class DecoratorChain:
    """
    Runs several decorators of one tag set in declaration order.

    Dependencies are shared: every distinct ``(type, tag)`` is requested once
    as a keyword-only ``dep_<n>`` parameter.
    """

    def __init__(self, target: TagSet, steps: list[_Step]):
        self.target = target
        self.params: list[Param] = []
        self.steps: list[tuple[_Step, tuple[int, ...]]] = []
        index: dict[tuple[Any, ParamTag], int] = {}
        for step in steps:
            slots: list[int] = []
            for p in step.params[1:]:
                key = (p.type, p.tag)
                if key not in index:
                    index[key] = len(self.params)
                    self.params.append(
                        replace(p, name=f"dep_{len(self.params)}", kind=inspect.Parameter.KEYWORD_ONLY)
                    )
                elif not p.has_default:
                    # Required by one step means required for the chain.
                    self.params[index[key]] = replace(self.params[index[key]], has_default=False)
                slots.append(index[key])
            self.steps.append((step, tuple(slots)))
        self.__name__ = self.__qualname__ = "chain(" + ", ".join(callable_name(s.function) for s in steps) + ")"

    def __call__(self, value: Any, **deps: Any) -> Any:
        for step, slots in self.steps:
            values = [value, *(deps.get(self.params[i].name, OMIT) for i in slots)]
            value = call_with(step.function, step.params, values)
        return value

    def __repr__(self) -> str:
        return self.__name__


def _target_param(first: Param, ts: TagSet, *, positional: bool) -> Param:
    kind = inspect.Parameter.POSITIONAL_ONLY if positional else first.kind
    return Param(first.name, ts.type, ParamTag(ts.name, ts.group), kind)


def compose_decorators(entries: list[DecoratorEntry]) -> list[DecorateBinding]:
    """
    Bucket decorators by target tag set and emit one binding per bucket.

    Raises:
        NodewireError: For an invalid decorator.
    """
    buckets: dict[TagSet, list[tuple[_Step, DecoratorEntry]]] = {}
    for entry in entries:
        try:
            shape = analyze(entry.decorate)
        except NodewireError as e:
            raise e.with_location(entry.decorate.location)
        targets = decorator_targets(shape, entry.candidates)
        if not targets:
            logger.debug("decorator %s matches no binding in its scope", callable_name(shape.function))
        for ts in targets:
            if ts.group is not None and not shape.collection:
                step = _Step(
                    GroupElementDecorator(shape.function, shape.target_type, ts.type),
                    (_target_param(shape.first, ts, positional=True), *shape.extras),
                )
            else:
                step = _Step(shape.function, (_target_param(shape.first, ts, positional=False), *shape.extras))
            buckets.setdefault(ts, []).append((step, entry))

    out: list[DecorateBinding] = []
    for ts, items in buckets.items():
        first_step, first_entry = items[0]
        if len(items) == 1:
            function: Callable[..., Any] = first_step.function
            params = first_step.params
        else:
            chain = DecoratorChain(ts, [step for step, _ in items])
            function = chain
            target = Param("value", ts.type, ParamTag(ts.name, ts.group), inspect.Parameter.POSITIONAL_ONLY)
            params = (target, *chain.params)
        out.append(
            DecorateBinding(
                function=function,
                params=tuple(params),
                target=ts,
                scope=first_entry.scope,
                location=first_entry.decorate.location,
            )
        )
    return out
