"""
Replace/Default resolution.

A ``Replace`` never removes the binding it overrides. Each replacement is
published under a scoped tag set (see ``TagSet.scoped``) and every consumer in
its reach has the matching parameter retargeted, so consumers outside the
override keep seeing the original.

Reach: a spec applies to the node list it is declared in (filtered by position
for ``ReplaceBefore``/``ReplaceAfter``) and, unconditionally, to every nested
node list declared where it applies. Among matching specs the most specific
wins; ties go to the deeper scope, then to the later declaration.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass, field, replace

from .binding_spec import bind_base_type, bind_spec, is_assignable, parse_bind_options
from .conditions import active_children, map_active
from .errors import Location, NodewireError, OverrideError
from .model.keys import TagSet, type_name
from .nodes import BindNode, Invoke, Module, Node, Populate, Provide, Replace, ReplaceMode, Supply
from .options import AutoGroupMember

logger = logging.getLogger(__name__)

# Path of enclosing Module nodes, by identity.
ScopePath = tuple[int, ...]


@dataclass(frozen=True)
class ReplaceSpec:
    """An override anchored at one position of one node list."""

    tag_sets: tuple[TagSet, ...]
    node: BindNode
    position: int
    depth: int
    scope: ScopePath
    mode: ReplaceMode
    is_default: bool
    id: int
    inherited: bool = False
    location: Location | None = None

    def applies_at(self, index: int) -> bool:
        if self.inherited or self.mode == ReplaceMode.ALL:
            return True
        if self.mode == ReplaceMode.AFTER:
            return self.position < index
        return self.position > index

    def inherit(self) -> ReplaceSpec:
        return replace(self, inherited=True, mode=ReplaceMode.ALL)


@dataclass
class _Counters:
    replace_id: int = 0

    def next_replace(self) -> int:
        self.replace_id += 1
        return self.replace_id


def override_targets(node: Replace) -> tuple[TagSet, ...]:
    """
    Tag sets a ``Replace``/``Default`` selects.

    The produced type (or each untagged ``As`` type) is combined with the
    ``Name``/``Group`` selector, if any. The selector is either standalone or
    follows the single ``As`` it tags, so ``As(T), Name("x")`` and
    ``Name("x"), As(T)`` select the same slot.

    Raises:
        OverrideError: For options an override cannot carry.
    """
    kind = "Default" if node.is_default else "Replace"
    cfg, decorators = parse_bind_options(node.node.options, node.location)
    if decorators:
        raise OverrideError(f"{kind} does not support Decorate options", location=node.location)
    if cfg.private is not None:
        raise OverrideError(f"{kind} does not support Private/Public", location=node.location)
    if cfg.tagged_as:
        raise OverrideError(f"{kind} does not support named or grouped exports", location=node.location)
    name, group = cfg.pending_name, cfg.pending_group
    tagged = [e for e in cfg.exports if e.name is not None or e.group is not None]
    if tagged:
        if len(cfg.exports) > 1 or cfg.has_pending:
            raise OverrideError(
                f"{kind} accepts a Name/Group after As only as the selector of a single As",
                location=node.location,
            )
        name, group = tagged[0].name, tagged[0].group
    if node.is_default and group is not None:
        raise OverrideError("Default does not support groups", location=node.location)

    base = bind_base_type(node.node)
    types: list[object] = []
    for export in cfg.exports:
        if not is_assignable(base, export.type):
            raise OverrideError(
                f"{type_name(base)} is not assignable to {type_name(export.type)}",
                location=node.location,
            )
        types.append(export.type)
    if not types or cfg.include_self:
        types.append(base)

    out: list[TagSet] = []
    for tp in types:
        ts = TagSet(tp, name, group)
        if ts not in out:
            out.append(ts)
    return tuple(out)


def selector_matches(provided: TagSet, selector: TagSet) -> bool:
    """
    Exact matching: a type-only selector matches the untagged slot only, a
    named (grouped) selector the slot with that name (group). A selector with
    both a name and a group matches either slot.
    """
    if provided.type is not selector.type and provided.type != selector.type:
        return False
    if selector.is_untagged:
        return provided.is_untagged
    if selector.name is not None and provided.name == selector.name and provided.group is None:
        return True
    return selector.group is not None and provided.group == selector.group and provided.name is None


def score(tag_sets: Iterable[TagSet], spec: ReplaceSpec) -> int:
    best = -1
    for ts in tag_sets:
        for selector in spec.tag_sets:
            if selector_matches(ts, selector):
                best = max(best, selector.specificity())
    return best


def select_replacement(tag_sets: Iterable[TagSet], specs: list[ReplaceSpec]) -> ReplaceSpec | None:
    """Pick the winning spec by specificity, then depth, then declaration order."""
    candidates = list(tag_sets)
    best: ReplaceSpec | None = None
    best_key = (-1, -1, -1)
    for index, spec in enumerate(specs):
        s = score(candidates, spec)
        if s < 0:
            continue
        key = (s, spec.depth, index)
        if key > best_key:
            best, best_key = spec, key
    return best


@dataclass
class _Universe:
    """Tag sets published anywhere in the active tree."""

    provided: list[TagSet]
    defaulted: list[TagSet]
    public: set[TagSet] = field(default_factory=set)
    private_scopes: dict[TagSet, list[ScopePath]] = field(default_factory=dict)

    def all(self) -> list[TagSet]:
        out = list(self.provided)
        out.extend(ts for ts in self.defaulted if ts not in self.provided)
        return out

    def provided_for(self, ts: TagSet, path: ScopePath) -> bool:
        """Whether a binding of ``ts`` is visible from the module at ``path``."""
        if ts in self.public:
            return True
        return any(path[: len(scope)] == scope for scope in self.private_scopes.get(ts, ()))


def _collect_universe(nodes: list[Node]) -> _Universe:
    universe = _Universe([], [])

    def visit(items: list[Node], path: ScopePath) -> None:
        for node in items:
            match node:
                case Provide() | Supply():
                    spec = bind_spec(node)[2]
                    for ts in spec.tag_sets:
                        if ts not in universe.provided:
                            universe.provided.append(ts)
                        if spec.private:
                            universe.private_scopes.setdefault(ts, []).append(path)
                        else:
                            universe.public.add(ts)
                case Replace() if node.is_default:
                    for ts in override_targets(node):
                        if ts not in universe.defaulted:
                            universe.defaulted.append(ts)
                case Module():
                    visit(active_children(node), (*path, id(node)))
                case _:
                    visit(active_children(node), path)

    visit(nodes, ())
    return universe


def _default_choices(specs: list[ReplaceSpec]) -> dict[TagSet, ReplaceSpec]:
    # Deeper wins, then later.
    chosen: dict[TagSet, tuple[tuple[int, int], ReplaceSpec]] = {}
    for index, spec in enumerate(specs):
        if not spec.is_default:
            continue
        for ts in spec.tag_sets:
            key = (spec.depth, index)
            if ts not in chosen or key > chosen[ts][0]:
                chosen[ts] = (key, spec)
    return {ts: spec for ts, (_, spec) in chosen.items()}


def active_tag_map(
    universe: _Universe, specs: list[ReplaceSpec], index: int, path: ScopePath
) -> dict[TagSet, TagSet]:
    """Original tag set -> scoped tag set for a consumer at ``index`` of the module at ``path``."""
    active = [s for s in specs if not s.is_default and s.applies_at(index)]
    out: dict[TagSet, TagSet] = {}
    if active:
        for ts in universe.all():
            spec = select_replacement([ts], active)
            if spec is not None:
                out[ts] = ts.scoped(spec.id)
    for ts, spec in _default_choices(specs).items():
        if ts in out or universe.provided_for(ts, path):
            continue
        out[ts] = ts.scoped(spec.id)
    return out


def replacement_targets(spec: ReplaceSpec, universe: _Universe) -> list[TagSet]:
    """Distinct provided tag sets a Replace displaces; a Default covers its own."""
    if spec.is_default:
        return [ts for ts in spec.tag_sets if ts not in universe.public]
    out: list[TagSet] = []
    for ts in universe.all():
        if ts not in out and any(selector_matches(ts, sel) for sel in spec.tag_sets):
            out.append(ts)
    return out


def _strip_displaced_rules(node: BindNode, active: list[ReplaceSpec]) -> BindNode:
    if not active:
        return node
    _, _, spec = bind_spec(node)
    displaced = {
        rule.key
        for rule in spec.auto_grouped
        if select_replacement([TagSet(rule.contract, group=rule.group)], active) is not None
    }
    if not displaced:
        return node
    options = tuple(
        opt
        for opt in node.options
        if not (isinstance(opt, AutoGroupMember) and opt.rule.key in displaced)
    )
    return node.evolve(options=options)


def _expand(spec: ReplaceSpec, universe: _Universe) -> list[Node]:
    targets = replacement_targets(spec, universe)
    if not targets and not spec.is_default:
        selectors = ", ".join(str(ts) for ts in spec.tag_sets)
        raise OverrideError(
            f"Replace matches no provided binding (selectors: {selectors})", location=spec.location
        )
    out: list[Node] = []
    for ts in targets:
        out.append(spec.node.evolve(exports_override=(ts.scoped(spec.id),)))
    return out


def _resolve(
    nodes: list[Node],
    inherited: list[ReplaceSpec],
    depth: int,
    path: ScopePath,
    universe: _Universe,
    counters: _Counters,
) -> list[Node]:
    local: dict[int, ReplaceSpec] = {}
    for i, node in enumerate(nodes):
        if isinstance(node, Replace):
            try:
                targets = override_targets(node)
            except NodewireError as e:
                raise e.with_location(node.location)
            local[i] = ReplaceSpec(
                tag_sets=targets,
                node=node.node,
                position=i,
                depth=depth,
                scope=path,
                mode=node.mode,
                is_default=node.is_default,
                id=counters.next_replace(),
                location=node.location,
            )
    specs = list(inherited) + list(local.values())

    out: list[Node] = []
    for i, node in enumerate(nodes):
        match node:
            case Replace():
                out.extend(_expand(local[i], universe))
            case Provide() | Supply():
                active = [s for s in specs if not s.is_default and s.applies_at(i)]
                node = _strip_displaced_rules(node, active)
                if isinstance(node, Provide):
                    rewrites = active_tag_map(universe, specs, i, path)
                    if rewrites:
                        node = node.evolve(param_rewrites={**node.param_rewrites, **rewrites})
                out.append(node)
            case Invoke() | Populate():
                rewrites = active_tag_map(universe, specs, i, path)
                if rewrites:
                    node = node.evolve(param_rewrites={**node.param_rewrites, **rewrites})
                out.append(node)
            case _:
                child_specs = [s.inherit() for s in specs if not s.is_default and s.applies_at(i)]
                child_specs += [s for s in specs if s.is_default]
                if isinstance(node, Module):
                    child_depth, child_path = depth + 1, (*path, id(node))
                else:
                    child_depth, child_path = depth, path
                out.append(
                    map_active(
                        node,
                        lambda children, cs=child_specs, cd=child_depth, cp=child_path: _resolve(
                            children, cs, cd, cp, universe, counters
                        ),
                    )
                )
    return out


def apply_replacements(nodes: list[Node]) -> list[Node]:
    """
    Expand every ``Replace``/``Default`` into scoped bindings and retarget the
    consumers in its reach.

    Raises:
        OverrideError: For a Replace matching nothing or carrying forbidden
            options.
    """
    universe = _collect_universe(nodes)
    result = _resolve(nodes, [], 0, (), universe, _Counters())
    logger.debug(
        "override resolution: %d provided tag sets, %d defaulted",
        len(universe.provided),
        len(universe.defaulted),
    )
    return result
