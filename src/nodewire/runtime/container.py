"""
Reference runtime interpreting a ``CompiledGraph``.

Values are created lazily and memoized per binding. A private binding is
visible only to consumers declared in its module or a nested one.
"""

from __future__ import annotations

import inspect
import logging
import threading
from collections.abc import Callable
from typing import Any, TypeVar

from ..errors import CircularDependencyError, DuplicateBindingError, MissingBindingError
from ..introspection import callable_name, expand_bundles, signature_params
from ..metadata import MetadataRegistry, MetadataValue
from ..model.bindings import (
    OMIT,
    BindingKind,
    CompiledGraph,
    DecorateBinding,
    HookBinding,
    HookKind,
    InvokeBinding,
    Param,
    PopulateBinding,
    ProvideBinding,
    call_with,
)
from ..model.keys import ParamTag, TagSet
from ..options import METADATA_GROUP
from .lifecycle import Lifecycle

logger = logging.getLogger(__name__)

T = TypeVar("T")

Scope = tuple[str, ...]


def _visible(binding: ProvideBinding, scope: Scope) -> bool:
    if not binding.private:
        return True
    return scope[: len(binding.scope)] == binding.scope


class Container:
    """
    Dependency container for one run of an application.

    ``Lifecycle``, ``MetadataRegistry`` and the container itself are always
    injectable, as are the extra ``builtins`` values (looked up by type). A
    ``logging.Logger`` parameter nothing provides gets a logger named after
    the consumer's module.
    """

    def __init__(self, graph: CompiledGraph, builtins: tuple[Any, ...] | list[Any] = ()):
        self.graph = graph
        self.lifecycle = Lifecycle()
        self.metadata = MetadataRegistry()
        self.done = threading.Event()
        self._done_callbacks: list[Callable[[], Any]] = []
        self._builtins: dict[Any, Any] = {
            Lifecycle: self.lifecycle,
            MetadataRegistry: self.metadata,
            Container: self,
        }
        for value in builtins:
            self._builtins[type(value)] = value

        self._providers: dict[TagSet, list[ProvideBinding]] = {}
        for binding in graph.provides():
            for ts in binding.exports:
                self._providers.setdefault(ts, []).append(binding)
        self._decorators: dict[TagSet, list[DecorateBinding]] = {}
        for decorator in graph.decorators():
            self._decorators.setdefault(decorator.target, []).append(decorator)

        self._lock = threading.RLock()
        self._instances: dict[int, Any] = {}
        self._decorated: dict[tuple[TagSet, tuple[int, ...]], Any] = {}
        self._resolving: list[Any] = []
        self._labels: list[str] = []
        self._started = False

    # resolution

    def _enter(self, key: Any, label: str) -> None:
        if key in self._resolving:
            start = self._resolving.index(key)
            raise CircularDependencyError([*self._labels[start:], label])
        self._resolving.append(key)
        self._labels.append(label)

    def _leave(self) -> None:
        self._resolving.pop()
        self._labels.pop()

    def _instance(self, binding: ProvideBinding) -> Any:
        key = id(binding)
        if key in self._instances:
            return self._instances[key]
        self._enter(key, str(binding))
        try:
            if binding.kind == BindingKind.VALUE:
                value = binding.target
            else:
                values = [self._resolve(p, binding.scope, binding.target) for p in binding.params]
                value = call_with(binding.target, binding.params, values)
                logger.debug("created %s", binding)
        finally:
            self._leave()
        self.metadata.register(value, *binding.metadata)
        self._instances[key] = value
        return value

    def _decorate(self, ts: TagSet, bindings: list[ProvideBinding], value: Any) -> Any:
        decorators = self._decorators.get(ts)
        if not decorators:
            return value
        key = (ts, tuple(id(b) for b in bindings))
        if key in self._decorated:
            return self._decorated[key]
        self._enter(key, f"decorate {ts}")
        try:
            for decorator in decorators:
                deps = [self._resolve(p, decorator.scope, decorator.function) for p in decorator.params[1:]]
                values = [value, *deps]
                value = call_with(decorator.function, decorator.params, values)
        finally:
            self._leave()
        self._decorated[key] = value
        return value

    def _visible_providers(self, ts: TagSet, scope: Scope) -> list[ProvideBinding]:
        return [b for b in self._providers.get(ts, ()) if _visible(b, scope)]

    def _metadata_values(self, scope: Scope) -> list[MetadataValue]:
        out: list[MetadataValue] = []
        for binding in self.graph.provides():
            if not binding.metadata or not _visible(binding, scope):
                continue
            first = binding.exports[0]
            out.append(
                MetadataValue(self._instance(binding), first.type, first.name, first.group, binding.metadata)
            )
        return out

    def _group(self, ts: TagSet, scope: Scope) -> list[Any]:
        if ts.group == METADATA_GROUP:
            return self._metadata_values(scope)
        providers = self._visible_providers(ts, scope)
        items = [self._instance(b) for b in providers]
        return list(self._decorate(ts, providers, items))

    def _single(self, param: Param, scope: Scope, owner: Any) -> Any:
        ts = param.tag_set
        providers = self._visible_providers(ts, scope)
        if len(providers) > 1:
            raise DuplicateBindingError(ts, [b.location for b in providers])
        if providers:
            return self._decorate(ts, providers, self._instance(providers[0]))
        if ts.is_untagged:
            if param.type in self._builtins:
                return self._builtins[param.type]
            if param.type is logging.Logger:
                return logging.getLogger(getattr(owner, "__module__", None) or __name__)
        if param.has_default or param.kind == inspect.Parameter.VAR_POSITIONAL:
            return OMIT
        if param.tag.optional:
            return None
        raise MissingBindingError(ts, callable_name(owner) if owner is not None else None)

    def _bundle(self, param: Param, scope: Scope, owner: Any) -> Any:
        bundle = object.__new__(param.type)
        for field in param.fields:
            value = self._resolve(field, scope, owner)
            if value is not OMIT:
                setattr(bundle, field.name, value)
        return bundle

    def _resolve(self, param: Param, scope: Scope, owner: Any) -> Any:
        if param.fields:
            return self._bundle(param, scope, owner)
        if param.tag.group is not None:
            return self._group(param.tag_set, scope)
        return self._single(param, scope, owner)

    # public API

    def get(self, target_type: type[T] | Any, name: str | None = None) -> T:
        """Resolve a single value as seen from the root module."""
        with self._lock:
            return self._resolve(Param("value", target_type, ParamTag(name=name)), (), None)

    def group(self, element_type: type[T] | Any, group: str) -> list[T]:
        """Resolve the members of a value group as seen from the root module."""
        with self._lock:
            return self._resolve(Param("items", element_type, ParamTag(group=group)), (), None)

    def run(self, func: Callable[..., T]) -> T:
        """Call ``func`` with its parameters resolved from the container."""
        params = tuple(expand_bundles(signature_params(func)))
        with self._lock:
            values = [self._resolve(p, (), func) for p in params]
        return call_with(func, params, values)

    def _call(self, binding: InvokeBinding) -> Any:
        values = [self._resolve(p, binding.scope, binding.function) for p in binding.params]
        logger.debug("invoking %s", callable_name(binding.function))
        return call_with(binding.function, binding.params, values)

    def _populate(self, binding: PopulateBinding) -> None:
        binding.ref.set(self._resolve(binding.param, binding.scope, None))

    def _hook(self, binding: HookBinding) -> None:
        fn = binding.function
        call = (lambda: fn(self.lifecycle)) if binding.wants_lifecycle else fn
        if binding.kind == HookKind.START:
            self.lifecycle.append(on_start=call, name=callable_name(fn))
        else:
            self.lifecycle.append(on_stop=call, name=callable_name(fn))

    def start(self) -> None:
        """
        Run invokes, fill populate targets and register hooks in declaration
        order, then run the start hooks.
        """
        with self._lock:
            if self._started:
                return
            self._started = True
            for binding in self.graph:
                match binding:
                    case InvokeBinding():
                        self._call(binding)
                    case PopulateBinding():
                        self._populate(binding)
                    case HookBinding():
                        self._hook(binding)
        self.lifecycle.start()

    def stop(self, timeout: float | None = None) -> bool:
        """Run the stop hooks; ``False`` if they overran ``timeout``."""
        return self.lifecycle.stop(timeout)

    def on_done(self, callback: Callable[[], Any]) -> None:
        """Call ``callback`` once ``shutdown()`` has been requested."""
        with self._lock:
            if not self.done.is_set():
                self._done_callbacks.append(callback)
                return
        callback()

    def shutdown(self) -> None:
        """Ask the application to stop; the run loop then stops the container."""
        with self._lock:
            if self.done.is_set():
                return
            self.done.set()
            callbacks, self._done_callbacks = self._done_callbacks, []
        for callback in callbacks:
            callback()
