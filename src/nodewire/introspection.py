"""
Signature introspection: result types and parameter slots of user callables.
"""

from __future__ import annotations

import inspect
import types
from collections.abc import Callable, Iterable, Sequence
from dataclasses import replace
from typing import Annotated, Any, Union, get_args, get_origin, get_type_hints

from .errors import Location, SignatureError, definition_location
from .model.bindings import Param
from .model.keys import ParamTag
from .options import Group, Name, Optional, ParamConfig

_COLLECTION_ORIGINS = (list, tuple, Sequence, Iterable, set, frozenset)


class In:
    """
    Base class for dependency bundles.

    A parameter annotated with a subclass of ``In`` is filled field by field:
    each class annotation is resolved as a dependency and set on a fresh
    instance of the bundle.
    """


def is_bundle(tp: Any) -> bool:
    return inspect.isclass(tp) and issubclass(tp, In) and tp is not In


def callable_name(fn: Any) -> str:
    return getattr(fn, "__qualname__", None) or getattr(fn, "__name__", None) or repr(fn)


def signature_of(fn: Callable[..., Any]) -> inspect.Signature:
    try:
        return inspect.signature(fn, eval_str=True)
    except (TypeError, ValueError, NameError) as e:
        raise SignatureError(
            f"cannot inspect signature of {callable_name(fn)}: {e}",
            target_location=definition_location(fn),
        ) from e


def result_type(constructor: Any) -> Any:
    """
    Return the type a constructor produces.

    A class produces itself; any other callable must declare a return annotation.

    Raises:
        SignatureError: If the constructor is not callable or has no usable
            return annotation.
    """
    if inspect.isclass(constructor):
        return constructor
    if not callable(constructor):
        raise SignatureError(f"constructor must be callable, got {constructor!r}")
    ret = signature_of(constructor).return_annotation
    if ret is inspect.Signature.empty:
        raise SignatureError(
            f"constructor {callable_name(constructor)} must declare a return type",
            target_location=definition_location(constructor),
        )
    if ret is None or ret is type(None):
        raise SignatureError(
            f"constructor {callable_name(constructor)} must return a value",
            target_location=definition_location(constructor),
        )
    base, _ = split_annotated(ret)
    return base


def split_annotated(annotation: Any) -> tuple[Any, tuple[Any, ...]]:
    """Split ``Annotated[T, *meta]`` into ``T`` and its metadata."""
    if get_origin(annotation) is Annotated:
        base, *meta = get_args(annotation)
        return base, tuple(meta)
    return annotation, ()


def unwrap_optional(annotation: Any) -> tuple[Any, bool]:
    """Return ``(T, True)`` for ``T | None`` and ``(annotation, False)`` otherwise."""
    origin = get_origin(annotation)
    if origin is Union or origin is types.UnionType:
        args = [a for a in get_args(annotation) if a is not type(None)]
        if len(args) == 1 and len(args) != len(get_args(annotation)):
            return args[0], True
    return annotation, False


def element_type(annotation: Any) -> Any | None:
    """Element type of ``list[T]``, ``Sequence[T]`` and friends, else ``None``."""
    origin = get_origin(annotation)
    if origin in _COLLECTION_ORIGINS:
        args = [a for a in get_args(annotation) if a is not Ellipsis]
        if len(args) == 1:
            return args[0]
    return None


def _tag_from_meta(meta: tuple[Any, ...]) -> ParamTag:
    tag = ParamTag()
    for item in meta:
        if isinstance(item, ParamTag):
            tag = tag.merge(item)
        elif isinstance(item, Name):
            tag = tag.merge(ParamTag(name=item.value))
        elif isinstance(item, Group):
            tag = tag.merge(ParamTag(group=item.value))
        elif isinstance(item, Optional):
            tag = tag.merge(ParamTag(optional=True))
    return tag


def make_param(
    name: str,
    annotation: Any,
    *,
    kind: inspect._ParameterKind = inspect.Parameter.POSITIONAL_OR_KEYWORD,
    has_default: bool = False,
    extra: ParamTag | None = None,
) -> Param:
    """Build a parameter slot from an annotation, honouring ``Annotated`` tags."""
    base, meta = split_annotated(annotation)
    tag = _tag_from_meta(meta)
    if extra is not None:
        tag = tag.merge(extra)
    base, is_optional = unwrap_optional(base)
    if is_optional:
        tag = tag.merge(ParamTag(optional=True))
    if tag.group is not None and kind != inspect.Parameter.VAR_POSITIONAL:
        elem = element_type(base)
        if elem is not None:
            base = elem
    return Param(name, base, tag, kind, has_default)


def signature_params(fn: Any) -> list[Param]:
    """
    Extract parameter slots of ``fn`` (a class uses its ``__init__``).

    ``**kwargs`` is ignored. A variadic ``*args`` counts as one slot.

    Raises:
        SignatureError: If a parameter without a default has no annotation.
    """
    sig = signature_of(fn)
    params: list[Param] = []
    for p in sig.parameters.values():
        if p.kind == inspect.Parameter.VAR_KEYWORD:
            continue
        has_default = p.default is not inspect.Parameter.empty
        if p.annotation is inspect.Parameter.empty:
            if not has_default:
                raise SignatureError(
                    f"parameter {p.name!r} of {callable_name(fn)} has no type annotation",
                    target_location=definition_location(fn),
                )
            params.append(Param(p.name, Any, ParamTag(), p.kind, True))
            continue
        params.append(make_param(p.name, p.annotation, kind=p.kind, has_default=has_default))
    return params


def bundle_fields(bundle: type[In]) -> list[Param]:
    """Parameter slots for each annotated field of a dependency bundle."""
    hints = get_type_hints(bundle, include_extras=True)
    fields: list[Param] = []
    for field_name, annotation in hints.items():
        if field_name.startswith("_"):
            continue
        fields.append(
            make_param(field_name, annotation, has_default=hasattr(bundle, field_name))
        )
    return fields


def is_variadic(params: Sequence[Param]) -> bool:
    return bool(params) and params[-1].kind == inspect.Parameter.VAR_POSITIONAL


def apply_param_config(
    fn: Any,
    params: list[Param],
    cfg: ParamConfig,
    *,
    location: Location | None = None,
    label: str = "callable",
) -> list[Param]:
    """
    Overlay positional tags from ``Params``/``Variadic``/``Name``... on ``params``.

    Raises:
        SignatureError: On a slot-count mismatch, with a hint and both the
            wiring and signature locations.
    """
    tags = list(cfg.tags)
    if cfg.variadic_shorthand:
        if not is_variadic(params):
            raise SignatureError(
                f"Variadic requires a variadic {label}",
                location=cfg.location or location,
                target_location=definition_location(fn),
            )
        tags = [None] * (len(params) - 1) + tags[-1:]
    elif cfg.params_set and cfg.slots != len(params):
        raise SignatureError(
            f"{label} params count mismatch: expected {len(params)}, got {cfg.slots}\n"
            f"hint: {callable_name(fn)} has {len(params)} params (variadic counts as one). "
            f"Use Params(...) with {len(params)} entries.",
            location=cfg.location or location,
            target_location=definition_location(fn),
        )
    if len(tags) > len(params):
        raise SignatureError(
            f"{label} {callable_name(fn)} has {len(params)} params but {len(tags)} tags were given",
            location=cfg.location or location,
            target_location=definition_location(fn),
        )
    out = list(params)
    for i, tag in enumerate(tags):
        if tag is None:
            continue
        param = out[i]
        merged = param.tag.merge(tag)
        if tag.group is not None and param.tag.group is None:
            out[i] = make_param(
                param.name,
                param.type,
                kind=param.kind,
                has_default=param.has_default,
                extra=merged,
            )
        else:
            out[i] = param.with_tag(merged)
    return out


def describe_signature(fn: Any) -> str:
    try:
        return f"{callable_name(fn)}{signature_of(fn)}"
    except SignatureError:
        return callable_name(fn)


def expand_bundles(params: Iterable[Param]) -> list[Param]:
    """Attach field slots to every dependency-bundle parameter."""
    out: list[Param] = []
    for p in params:
        if is_bundle(p.type) and not p.fields:
            p = replace(p, fields=tuple(bundle_fields(p.type)))
        out.append(p)
    return out
