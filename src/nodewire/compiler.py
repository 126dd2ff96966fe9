"""
Graph compilation: the pass pipeline and descriptor emission.
"""

from __future__ import annotations

import inspect
import logging
from collections.abc import Iterable
from dataclasses import replace
from typing import Any

from .auto_group import apply_auto_groups
from .auto_inject import apply_auto_inject
from .binding_spec import bind_spec, parse_param_options
from .conditions import ConfigResolver, active_children, attach_resolver
from .decorate import DecoratorEntry, collect_decorators, compose_decorators
from .errors import NodewireError, SignatureError, definition_location
from .introspection import (
    apply_param_config,
    callable_name,
    expand_bundles,
    make_param,
    signature_of,
    signature_params,
)
from .model.bindings import (
    BindingKind,
    CompiledBinding,
    CompiledGraph,
    HookBinding,
    HookKind,
    InvokeBinding,
    Param,
    PopulateBinding,
    ProvideBinding,
)
from .model.keys import ParamTag, TagSet
from .nodes import (
    AutoGroup,
    ErrorNode,
    Hook,
    Invoke,
    Module,
    Node,
    Populate,
    Provide,
    Replace,
    Supply,
    Switch,
    collect_nodes,
)
from .priority import apply_order_metadata, has_priority, order_decorators
from .replace import apply_replacements
from .runtime.lifecycle import Lifecycle

logger = logging.getLogger(__name__)


def prepare(nodes: Iterable[Any], resolver: ConfigResolver | None) -> list[Node]:
    """Per-build copy of the tree with scoped rules propagated."""
    tree = attach_resolver(collect_nodes(nodes), resolver)
    tree = apply_auto_groups(tree, [])
    return apply_auto_inject(tree, False)


def compile_graph(nodes: Iterable[Any], resolver: ConfigResolver | None = None) -> CompiledGraph:
    """
    Compile a node tree into a flat ``CompiledGraph``.

    Raises:
        NodewireError: The first declaration error found.
    """
    tree = apply_replacements(prepare(nodes, resolver))

    entries: list[DecoratorEntry] = []
    if has_priority(tree):
        tree = apply_order_metadata(tree, [0])
        # Sorting runs before user decorators of the same group.
        entries.extend(DecoratorEntry(d, (), ()) for d in order_decorators(tree))
    entries.extend(collect_decorators(tree))

    bindings = emit(tree, ())
    decorators = compose_decorators(entries)
    graph = CompiledGraph(tuple(bindings) + tuple(decorators))
    logger.debug(
        "compiled %d bindings (%d providers, %d decorators)",
        len(graph),
        len(graph.provides()),
        len(decorators),
    )
    return graph


def rewrite_params(params: Iterable[Param], rewrites: dict[TagSet, TagSet]) -> tuple[Param, ...]:
    """Retarget parameters whose tag set has been overridden."""
    if not rewrites:
        return tuple(params)
    out: list[Param] = []
    for p in params:
        if p.fields:
            p = replace(p, fields=rewrite_params(p.fields, rewrites))
        target = rewrites.get(p.tag_set)
        if target is not None:
            p = p.with_tag(p.tag.retarget(target))
        out.append(p)
    return tuple(out)


def _callable_params(fn: Any, cfg: Any, *, location: Any, label: str) -> list[Param]:
    params = signature_params(fn)
    params = apply_param_config(fn, params, cfg, location=location, label=label)
    return expand_bundles(params)


def _emit_provide(node: Provide, scope: tuple[str, ...]) -> ProvideBinding:
    cfg, _, spec = bind_spec(node)
    params = _callable_params(node.constructor, cfg.params, location=node.location, label="constructor")
    return ProvideBinding(
        kind=BindingKind.CONSTRUCTOR,
        target=node.constructor,
        params=rewrite_params(params, node.param_rewrites),
        exports=tuple(spec.tag_sets),
        private=spec.private,
        scope=scope,
        metadata=spec.metadata,
        location=node.location,
    )


def _emit_supply(node: Supply, scope: tuple[str, ...]) -> ProvideBinding:
    _, _, spec = bind_spec(node)
    return ProvideBinding(
        kind=BindingKind.VALUE,
        target=node.value,
        params=(),
        exports=tuple(spec.tag_sets),
        private=spec.private,
        scope=scope,
        metadata=spec.metadata,
        location=node.location,
    )


def _emit_invoke(node: Invoke, scope: tuple[str, ...]) -> InvokeBinding:
    if not callable(node.function):
        raise SignatureError(f"Invoke requires a callable, got {node.function!r}")
    cfg = parse_param_options(node.options, node.location)
    params = _callable_params(node.function, cfg, location=node.location, label="invoke")
    return InvokeBinding(
        function=node.function,
        params=rewrite_params(params, node.param_rewrites),
        scope=scope,
        location=node.location,
    )


def _emit_populate(node: Populate, scope: tuple[str, ...]) -> list[PopulateBinding]:
    if node.error is not None:
        raise node.error
    cfg = parse_param_options(node.options, node.location)
    tag = ParamTag()
    for t in cfg.tags:
        if t is not None:
            tag = tag.merge(t)
    out: list[PopulateBinding] = []
    for ref in node.targets:
        param = make_param("ref", ref.type, extra=tag)
        (param,) = expand_bundles([param])
        (param,) = rewrite_params([param], node.param_rewrites)
        out.append(PopulateBinding(ref=ref, param=param, scope=scope, location=node.location))
    return out


def _emit_hook(node: Hook, scope: tuple[str, ...]) -> HookBinding:
    fn = node.function
    label = "OnStart" if node.kind == HookKind.START else "OnStop"
    if not callable(fn):
        raise SignatureError(f"{label} requires a callable, got {fn!r}")
    target = definition_location(fn)
    sig = signature_of(fn)
    params = list(sig.parameters.values())
    if len(params) > 1:
        raise SignatureError(
            f"{label} hook {callable_name(fn)} takes at most one parameter (Lifecycle)",
            target_location=target,
        )
    if params and params[0].annotation is not Lifecycle:
        raise SignatureError(
            f"{label} hook parameter {params[0].name!r} must be annotated Lifecycle",
            target_location=target,
        )
    ret = sig.return_annotation
    if ret is not inspect.Signature.empty and ret is not None and ret is not type(None):
        raise SignatureError(f"{label} hook {callable_name(fn)} must return None", target_location=target)
    return HookBinding(kind=node.kind, function=fn, wants_lifecycle=bool(params), scope=scope, location=node.location)


def _target_of(node: Node) -> Any:
    for attr in ("constructor", "function"):
        if hasattr(node, attr):
            return getattr(node, attr)
    return None


def emit(nodes: list[Node], scope: tuple[str, ...]) -> list[CompiledBinding]:
    """Flatten active nodes into descriptors, in declaration order."""
    out: list[CompiledBinding] = []
    for node in nodes:
        try:
            match node:
                case ErrorNode():
                    raise node.error
                case Provide():
                    out.append(_emit_provide(node, scope))
                case Supply():
                    out.append(_emit_supply(node, scope))
                case Invoke():
                    out.append(_emit_invoke(node, scope))
                case Populate():
                    out.extend(_emit_populate(node, scope))
                case Hook():
                    out.append(_emit_hook(node, scope))
                case AutoGroup() if node.error is not None:
                    raise node.error
                case Switch() if node.error is not None:
                    raise node.error
                case Module():
                    out.extend(emit(node.nodes, (*scope, node.name)))
                case Replace():
                    raise NodewireError("unresolved Replace node", location=node.location)
                case _:
                    out.extend(emit(active_children(node), scope))
        except NodewireError as e:
            target = _target_of(node)
            raise e.with_location(node.location, definition_location(target) if target is not None else None)
    return out
