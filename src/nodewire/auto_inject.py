"""
Field injection.

After an ``AutoInject()`` node, bindings whose type declares injectable fields
are rewritten so the runtime also resolves those fields and sets them on the
constructed value::

    class Handler:
        repo: Annotated[Repo, Inject()]
        audit: Annotated[list[Sink], Inject(group="audit")]

    @dataclass
    class Job:
        clock: Clock = field(default=None, metadata={"di": "name=utc,optional"})
"""

from __future__ import annotations

import copy
import dataclasses
import inspect
from dataclasses import dataclass
from typing import Annotated, Any, get_type_hints

from .errors import DeclarationError
from .introspection import callable_name, result_type, split_annotated
from .model.keys import ParamTag
from .nodes import AutoInject, Node, Options, Provide, Supply, map_children
from .options import AutoInjectIgnore, Both

INJECT_PREFIX = "_inject_"


@dataclass(frozen=True)
class Inject:
    """Marks a class attribute for injection."""

    name: str | None = None
    group: str | None = None
    optional: bool = False

    @classmethod
    def parse(cls, tag: str) -> Inject:
        """
        Parse a comma separated tag: ``inject``, ``name=X``, ``group=X``, ``optional``.

        Raises:
            DeclarationError: On an unknown part or an empty name/group.
        """
        name: str | None = None
        group: str | None = None
        optional = False
        for part in (p.strip() for p in tag.split(",")):
            if not part or part == "inject":
                continue
            if part == "optional":
                optional = True
            elif part.startswith("name="):
                name = part[len("name=") :]
                if not name:
                    raise DeclarationError(f"empty name in injection tag {tag!r}")
            elif part.startswith("group="):
                group = part[len("group=") :]
                if not group:
                    raise DeclarationError(f"empty group in injection tag {tag!r}")
            else:
                raise DeclarationError(f"unknown injection tag part {part!r} in {tag!r}")
        return cls(name, group, optional)

    def param_tag(self) -> ParamTag:
        return ParamTag(self.name, self.group, self.optional)


@dataclass(frozen=True)
class InjectField:
    attr: str
    annotation: Any
    inject: Inject

    @property
    def param_name(self) -> str:
        return INJECT_PREFIX + self.attr


def find_inject_fields(tp: Any) -> list[InjectField]:
    """Injectable attributes declared on ``tp`` (empty for non-classes)."""
    if not inspect.isclass(tp):
        return []
    try:
        hints = get_type_hints(tp, include_extras=True)
    except (NameError, TypeError):
        return []
    dc_fields = {f.name: f for f in dataclasses.fields(tp)} if dataclasses.is_dataclass(tp) else {}
    found: list[InjectField] = []
    for attr, annotation in hints.items():
        if attr.startswith("_"):
            continue
        base, meta = split_annotated(annotation)
        marker = next((m for m in meta if isinstance(m, Inject)), None)
        if marker is None and attr in dc_fields:
            raw = dc_fields[attr].metadata.get("di")
            if isinstance(raw, str):
                marker = Inject.parse(raw)
        if marker is not None:
            found.append(InjectField(attr, base, marker))
    return found


def inject_into(target: Any, values: dict[str, Any]) -> Any:
    """
    Set injected attributes; frozen dataclasses are copied, everything else
    is updated in place.
    """
    if not values:
        return target
    params = getattr(type(target), "__dataclass_params__", None)
    if params is not None and params.frozen:
        clone = copy.copy(target)
        for attr, value in values.items():
            object.__setattr__(clone, attr, value)
        return clone
    for attr, value in values.items():
        setattr(target, attr, value)
    return target


class _Missing:
    def __repr__(self) -> str:
        return "<not injected>"


_MISSING = _Missing()


class FieldInjector:
    """
    A constructor that also receives one keyword argument per injectable field.

    Its ``__signature__`` is the original one plus the synthetic parameters,
    so it is compiled like any other constructor.
    """

    def __init__(self, target: Any, fields: list[InjectField], *, is_value: bool = False):
        self.target = target
        self.fields = fields
        self.is_value = is_value
        label = type(target).__name__ if is_value else callable_name(target)
        if not is_value:
            self.__wrapped__ = target
        self.__qualname__ = self.__name__ = f"inject({label})"
        self.__signature__ = self._signature()

    def _signature(self) -> inspect.Signature:
        if self.is_value:
            original: list[inspect.Parameter] = []
            produced: Any = type(self.target)
        else:
            sig = inspect.signature(self.target, eval_str=True)
            original = list(sig.parameters.values())
            produced = result_type(self.target)
        var_kw = [p for p in original if p.kind == inspect.Parameter.VAR_KEYWORD]
        params = [p for p in original if p.kind != inspect.Parameter.VAR_KEYWORD]
        for f in self.fields:
            params.append(
                inspect.Parameter(
                    f.param_name,
                    inspect.Parameter.KEYWORD_ONLY,
                    default=_MISSING if f.inject.optional else inspect.Parameter.empty,
                    annotation=Annotated[f.annotation, f.inject.param_tag()],
                )
            )
        return inspect.Signature(params + var_kw, return_annotation=produced)

    def __call__(self, *args: Any, **kwargs: Any) -> Any:
        values: dict[str, Any] = {}
        for f in self.fields:
            value = kwargs.pop(f.param_name, _MISSING)
            if value is not _MISSING:
                values[f.attr] = value
        result = self.target if self.is_value else self.target(*args, **kwargs)
        return inject_into(result, values)

    def __repr__(self) -> str:
        return self.__qualname__


def wrap_auto_inject_constructor(constructor: Any) -> tuple[Any, bool]:
    """Return ``(wrapper, True)``, or ``(constructor, False)`` when nothing is injectable."""
    if isinstance(constructor, FieldInjector):
        return constructor, False
    fields = find_inject_fields(result_type(constructor))
    if not fields:
        return constructor, False
    return FieldInjector(constructor, fields), True


def wrap_auto_inject_value(value: Any) -> tuple[Any, bool]:
    """Return ``(constructor, True)`` for a value with injectable fields, else ``(value, False)``."""
    fields = find_inject_fields(type(value))
    if not fields:
        return value, False
    return FieldInjector(value, fields, is_value=True), True


def _ignores_auto_inject(options: tuple[Any, ...] | list[Any]) -> bool:
    for opt in options:
        if isinstance(opt, AutoInjectIgnore):
            return True
        if isinstance(opt, Options) and _ignores_auto_inject(opt.option_items()):
            return True
        if isinstance(opt, Both) and _ignores_auto_inject(opt.options):
            return True
    return False


def _inject(node: Provide | Supply) -> Node:
    if _ignores_auto_inject(node.options):
        return node
    if isinstance(node, Provide):
        wrapped, changed = wrap_auto_inject_constructor(node.constructor)
        return node.evolve(constructor=wrapped) if changed else node
    if node.value is None:
        return node
    wrapped, changed = wrap_auto_inject_value(node.value)
    if not changed:
        return node
    provide = Provide(wrapped, *node.options)
    provide.location = node.location
    provide.exports_override = node.exports_override
    return provide


def apply_auto_inject(nodes: list[Node], enabled: bool) -> list[Node]:
    """Wrap bindings declared after an ``AutoInject()`` in this list or an enclosing one."""
    out: list[Node] = []
    for node in nodes:
        match node:
            case AutoInject():
                enabled = True
                out.append(node)
            case Provide() | Supply():
                out.append(_inject(node) if enabled else node)
            case _:
                scoped = enabled
                out.append(map_children(node, lambda children: apply_auto_inject(children, scoped)))
    return out
