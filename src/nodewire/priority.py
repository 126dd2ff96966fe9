"""
Priority ordering of auto groups.

Once any binding declares ``Priority``, every binding gets an ``OrderIndex``
(declaration order) and each auto group with a prioritized member gets a
decorator that stable-sorts it by ``(priority, order index)``.
"""

from __future__ import annotations

import inspect
from typing import Any

from .auto_group import collect_rules
from .binding_spec import bind_spec, parse_bind_options
from .conditions import active_children
from .metadata import MetadataRegistry
from .model.keys import type_name
from .nodes import Decorate, Node, Provide, Replace, Supply, map_children
from .options import AutoGroupRule, Group, Metadata, OrderIndex, PriorityOrder


def _bind_nodes(nodes: list[Node], *, overrides: bool = False) -> list[Provide | Supply]:
    out: list[Provide | Supply] = []
    for node in nodes:
        match node:
            case Provide() | Supply():
                out.append(node)
            case Replace():
                if overrides:
                    out.append(node.node)
            case _:
                out.extend(_bind_nodes(active_children(node), overrides=overrides))
    return out


def has_priority(nodes: list[Node]) -> bool:
    """Whether any active binding carries an explicit priority."""
    for node in _bind_nodes(nodes, overrides=True):
        cfg, _ = parse_bind_options(node.options, node.location)
        if any(isinstance(m, PriorityOrder) for m in cfg.metadata):
            return True
    return False


def _has_order(options: tuple[Any, ...]) -> bool:
    return any(isinstance(opt, Metadata) and isinstance(opt.value, OrderIndex) for opt in options)


def apply_order_metadata(nodes: list[Node], counter: list[int]) -> list[Node]:
    """Give every binding an ``OrderIndex``, keeping one that is already present."""
    out: list[Node] = []
    for node in nodes:
        match node:
            case Provide() | Supply():
                if not _has_order(node.options):
                    node = node.evolve(options=(*node.options, Metadata(OrderIndex(counter[0]))))
                counter[0] += 1
                out.append(node)
            case _:
                out.append(map_children(node, lambda children: apply_order_metadata(children, counter)))
    return out


class PrioritySorter:
    """Group decorator: stable sort by priority, then declaration order."""

    def __init__(self, rule: AutoGroupRule):
        self.rule = rule
        self.__name__ = self.__qualname__ = f"sort_by_priority[{type_name(rule.contract)}]"
        self.__signature__ = inspect.Signature(
            [
                inspect.Parameter("items", inspect.Parameter.POSITIONAL_ONLY, annotation=list[rule.contract]),
                inspect.Parameter("registry", inspect.Parameter.POSITIONAL_OR_KEYWORD, annotation=MetadataRegistry),
            ],
            return_annotation=list[rule.contract],
        )

    def __call__(self, items: list[Any], registry: MetadataRegistry) -> list[Any]:
        return sorted(items, key=registry.sort_key)

    def __repr__(self) -> str:
        return self.__name__


def _prioritized_rules(nodes: list[Node]) -> set[tuple[Any, str]]:
    keys: set[tuple[Any, str]] = set()
    for node in _bind_nodes(nodes):
        spec = bind_spec(node)[2]
        if any(isinstance(m, PriorityOrder) for m in spec.metadata):
            keys.update(rule.key for rule in spec.auto_grouped)
    return keys


def order_decorators(nodes: list[Node]) -> list[Decorate]:
    """One sort decorator per auto group holding at least one prioritized member."""
    prioritized = _prioritized_rules(nodes)
    return [
        Decorate(PrioritySorter(rule), Group(rule.group))
        for rule in collect_rules(nodes)
        if rule.key in prioritized
    ]
