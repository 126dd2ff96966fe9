"""
Auto-group propagation.

``AutoGroup`` rules declared in a node list apply to every binding in that
list and in nested scopes. Rules declared inside a ``Module`` stay inside it.
"""

from __future__ import annotations

from .nodes import AutoGroup, Node, Provide, Supply, child_lists, map_children
from .options import AutoGroupMember, AutoGroupRule


def apply_auto_groups(nodes: list[Node], inherited: list[AutoGroupRule]) -> list[Node]:
    """Attach the rules visible at each binding as ``AutoGroupMember`` options."""
    local = list(inherited)
    for node in nodes:
        if isinstance(node, AutoGroup) and node.error is None:
            local = _with_rule(local, node.rule)

    out: list[Node] = []
    for node in nodes:
        match node:
            case Provide() | Supply():
                out.append(node.evolve(options=append_rule_options(node.options, local)))
            case _:
                out.append(map_children(node, lambda children: apply_auto_groups(children, local)))
    return out


def _with_rule(rules: list[AutoGroupRule], rule: AutoGroupRule) -> list[AutoGroupRule]:
    # A same-key rule in a nested scope replaces the inherited one there.
    return [r for r in rules if r.key != rule.key] + [rule]


def append_rule_options(options: tuple[object, ...], rules: list[AutoGroupRule]) -> tuple[object, ...]:
    present = {opt.rule.key for opt in options if isinstance(opt, AutoGroupMember)}
    extra = tuple(AutoGroupMember(rule) for rule in rules if rule.key not in present)
    return tuple(options) + extra


def collect_rules(nodes: list[Node]) -> list[AutoGroupRule]:
    """Every auto-group rule declared anywhere in the tree, outermost first."""
    rules: list[AutoGroupRule] = []
    seen: set[tuple[object, str]] = set()

    def visit(items: list[Node]) -> None:
        for node in items:
            if isinstance(node, AutoGroup) and node.error is None and node.rule.key not in seen:
                seen.add(node.rule.key)
                rules.append(node.rule)
            for children in child_lists(node):
                visit(children)

    visit(nodes)
    return rules
