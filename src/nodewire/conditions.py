"""
Conditional inclusion: ``If``/``When`` and ``Switch`` evaluation.

Each conditional is evaluated at most once per build; the result is memoized
on the per-build copy of the node.
"""

from __future__ import annotations

import inspect
from collections.abc import Callable
from typing import Any

from .errors import (
    ConfigResolutionError,
    DeclarationError,
    Location,
    SignatureError,
    definition_location,
)
from .introspection import callable_name, signature_of
from .nodes import ConditionMode, Conditional, Module, Node, Options, Switch, map_children

MAX_PREDICATE_PARAMS = 8

ConfigResolver = Callable[[Any], Any]


def config_resolver_from(*values: Any) -> ConfigResolver:
    """
    Build a resolver that serves each value by its type and base classes.

    Earlier values win when two share a base class.
    """
    by_type: dict[Any, Any] = {}
    for value in values:
        for tp in type(value).__mro__:
            if tp is object:
                continue
            by_type.setdefault(tp, value)

    def resolve(tp: Any) -> Any:
        try:
            return by_type[tp]
        except KeyError:
            raise ConfigResolutionError(
                f"no configuration value of type {getattr(tp, '__name__', tp)}"
            ) from None

    return resolve


def eval_predicate(
    predicate: Callable[..., Any],
    resolver: ConfigResolver | None,
    location: Location | None = None,
) -> bool:
    """
    Call a ``When`` predicate with parameters taken from ``resolver``.

    Raises:
        SignatureError: If the predicate has too many parameters, unannotated
            parameters, or does not return ``bool``.
        DeclarationError: If the predicate takes parameters and no resolver is
            registered.
        ConfigResolutionError: If the resolver cannot provide a parameter.
    """
    target = definition_location(predicate)
    sig = signature_of(predicate)
    params = list(sig.parameters.values())
    if len(params) > MAX_PREDICATE_PARAMS:
        raise SignatureError(
            f"When predicate {callable_name(predicate)} takes {len(params)} params, "
            f"at most {MAX_PREDICATE_PARAMS} are supported",
            location=location,
            target_location=target,
        )
    ret = sig.return_annotation
    if ret is not inspect.Signature.empty and ret is not bool:
        raise SignatureError(
            f"When predicate {callable_name(predicate)} must return bool",
            location=location,
            target_location=target,
        )
    if params and resolver is None:
        raise DeclarationError(
            f"When predicate {callable_name(predicate)} has parameters but no config resolver is registered",
            location=location,
            target_location=target,
        )
    args: list[Any] = []
    for p in params:
        if p.annotation is inspect.Parameter.empty:
            raise SignatureError(
                f"When parameter {p.name!r} needs a type annotation",
                location=location,
                target_location=target,
            )
        assert resolver is not None
        try:
            args.append(resolver(p.annotation))
        except ConfigResolutionError as e:
            raise e.with_location(location, target) from e
    result = predicate(*args)
    if not isinstance(result, bool):
        raise SignatureError(
            f"When predicate {callable_name(predicate)} returned {type(result).__name__}, expected bool",
            location=location,
            target_location=target,
        )
    return result


def evaluate(node: Conditional) -> bool:
    """Evaluate (once) whether a conditional's children are included."""
    if node.memo:
        return node.memo[0]
    if node.mode == ConditionMode.IF:
        result = bool(node.condition)
    else:
        result = eval_predicate(node.condition, node.resolver, node.location)
    node.memo.append(result)
    return result


def select_branch(node: Switch) -> list[Node]:
    """Return the nodes of the first matching case, the default, or nothing."""
    if node.error is not None:
        raise node.error
    if not node.memo:
        node.memo.append(_select_index(node))
    index = node.memo[0]
    branches = node.branches()
    return branches[index] if index < len(branches) else []


def _select_index(node: Switch) -> int:
    for i, case in enumerate(node.cases):
        if case.mode == ConditionMode.IF:
            matched = bool(case.condition)
        else:
            matched = eval_predicate(case.condition, node.resolver, case.location)
        if matched:
            return i
    # The default branch follows the cases; without one the index is out of range.
    return len(node.cases)


def active_children(node: Node) -> list[Node]:
    """Children that take part in the build (inactive branches excluded)."""
    match node:
        case Module() | Options():
            return node.nodes
        case Conditional():
            return node.nodes if evaluate(node) else []
        case Switch():
            return select_branch(node)
    return []


def attach_resolver(nodes: list[Node], resolver: ConfigResolver | None) -> list[Node]:
    """Copy every conditional in the tree with a fresh memo and the resolver."""
    out: list[Node] = []
    for node in nodes:
        if isinstance(node, Conditional | Switch):
            node = node.reset(resolver)
        out.append(map_children(node, lambda children: attach_resolver(children, resolver)))
    return out


def map_active(node: Node, transform: Callable[[list[Node]], list[Node]]) -> Node:
    """Like ``map_children``, but inactive branches are left untouched."""
    match node:
        case Module() | Options():
            return node.evolve(nodes=transform(node.nodes))
        case Conditional():
            return node.evolve(nodes=transform(node.nodes)) if evaluate(node) else node
        case Switch():
            select_branch(node)
            index = node.memo[0]
            branches = node.branches()
            if index >= len(branches):
                return node
            branches[index] = transform(branches[index])
            return node.with_branches(branches)
    return node
