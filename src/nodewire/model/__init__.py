"""
Model subpackage containing core data structures and types.

Tag sets identify bindings; binding descriptors are what compilation emits
and what a runtime consumes.
"""

from .bindings import (
    OMIT,
    BindingKind,
    CompiledBinding,
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
from .keys import REPLACE_SUFFIX, ParamTag, TagSet, type_name

__all__ = [
    "OMIT",
    "REPLACE_SUFFIX",
    "BindingKind",
    "CompiledBinding",
    "CompiledGraph",
    "DecorateBinding",
    "HookBinding",
    "HookKind",
    "InvokeBinding",
    "Param",
    "ParamTag",
    "PopulateBinding",
    "ProvideBinding",
    "TagSet",
    "call_with",
    "type_name",
]
