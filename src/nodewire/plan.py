"""
Readable rendering of a node tree.

The plan shows the tree as it is built: inactive branches are collapsed and
auto-group rules are already attached to the bindings in their scope. A node
whose declaration is invalid renders as ``<Kind> <error: ...>`` so the rest of
the tree stays visible.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable
from typing import Any

from .binding_spec import bind_base_type, bind_spec, parse_param_options
from .compiler import prepare
from .conditions import ConfigResolver, evaluate, select_branch
from .decorate import analyze
from .errors import NodewireError
from .introspection import describe_signature
from .model.bindings import HookKind
from .model.keys import ParamTag, TagSet, type_name
from .nodes import (
    AutoGroup,
    AutoInject,
    Conditional,
    Decorate,
    ErrorNode,
    Hook,
    Invoke,
    Module,
    Node,
    Options,
    Populate,
    Provide,
    Replace,
    Supply,
    Switch,
)
from .replace import override_targets


def format_tag_sets(tag_sets: Iterable[TagSet]) -> str:
    return "[" + ", ".join(str(ts) for ts in tag_sets) + "]"


def _format_param_tags(tags: list[ParamTag | None]) -> str:
    return "[" + ", ".join(str(t) if t is not None and not t.is_empty() else "_" for t in tags) + "]"


def _with_tags(label: str, tag_sets: list[TagSet]) -> str:
    return f"{label} tags={format_tag_sets(tag_sets)}" if tag_sets else label


def _describe_bind(node: Provide | Supply) -> str:
    _, _, spec = bind_spec(node)
    return _with_tags(type_name(bind_base_type(node)), spec.tag_sets)


def _describe_override(node: Replace) -> str:
    label = _with_tags(type_name(bind_base_type(node.node)), list(override_targets(node)))
    return label if node.is_default else f"{label} {node.mode.value}"


def _describe_invoke(node: Invoke) -> str:
    cfg = parse_param_options(node.options, node.location)
    label = describe_signature(node.function)
    return f"{label} tags={_format_param_tags(cfg.tags)}" if cfg.tags else label


def _describe_populate(node: Populate) -> str:
    if node.error is not None:
        raise node.error
    cfg = parse_param_options(node.options, node.location)
    label = ", ".join(f"Ref[{type_name(ref.type)}]" for ref in node.targets)
    return f"{label} tags={_format_param_tags(cfg.tags)}" if cfg.tags else label


def _describe_decorate(node: Decorate) -> str:
    shape = analyze(node)
    label = describe_signature(node.function)
    return f"{label} tags={format_tag_sets([shape.explicit])}" if shape.explicit is not None else label


def _guarded(kind: str, describe: Callable[[], str]) -> str:
    try:
        return f"{kind} {describe()}"
    except NodewireError as e:
        return f"{kind} <error: {e.message}>"


def node_label(node: Node) -> tuple[str, list[Node]]:
    """The label of ``node`` and the children rendered below it."""
    match node:
        case Module():
            return f'Module "{node.name}"', node.nodes
        case Options():
            return "Options", node.nodes
        case Switch():
            try:
                selected = select_branch(node)
            except NodewireError as e:
                return f"Switch <error: {e.message}>", []
            return ("Switch", selected) if selected else ("Switch (no match)", [])
        case Conditional():
            try:
                included = evaluate(node)
            except NodewireError as e:
                return f"If/When <error: {e.message}>", []
            if not included:
                return "If/When (skipped)", []
            return node.mode.value, node.nodes
        case Provide():
            return _guarded("Provide", lambda: _describe_bind(node)), []
        case Supply():
            return _guarded("Supply", lambda: _describe_bind(node)), []
        case Replace():
            kind = "Default" if node.is_default else "Replace"
            return _guarded(kind, lambda: _describe_override(node)), []
        case Invoke():
            return _guarded("Invoke", lambda: _describe_invoke(node)), []
        case Populate():
            return _guarded("Populate", lambda: _describe_populate(node)), []
        case AutoGroup():
            if node.error is not None:
                return f"AutoGroup <error: {node.error.message}>", []
            return f'AutoGroup {type_name(node.rule.contract)} -> "{node.rule.group}"', []
        case AutoInject():
            return "AutoInject", []
        case Decorate():
            return _guarded("Decorate", lambda: _describe_decorate(node)), []
        case Hook():
            return ("OnStart" if node.kind == HookKind.START else "OnStop"), []
        case ErrorNode():
            return f"Error {node.error.message}", []
    return type(node).__name__, []


def _write(out: list[str], node: Node, prefix: str, last: bool) -> None:
    branch, next_prefix = ("`-- ", prefix + "    ") if last else ("|-- ", prefix + "|   ")
    label, children = node_label(node)
    out.append(f"{prefix}{branch}{label}\n")
    for i, child in enumerate(children):
        _write(out, child, next_prefix, i == len(children) - 1)


def render_plan(nodes: Iterable[Any], resolver: ConfigResolver | None = None) -> str:
    """Render the tree the way a build would see it."""
    tree = prepare(nodes, resolver)
    out: list[str] = []
    for i, node in enumerate(tree):
        _write(out, node, "", i == len(tree) - 1)
    return "".join(out)
