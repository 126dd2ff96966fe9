"""
nodewire: declarative dependency graphs.

Applications are declared as trees of nodes (``Provide``, ``Module``,
``Replace``, ``AutoGroup``...) and compiled into a flat list of binding
descriptors that the bundled ``Container`` runs.
"""

from .app import App, RestartSignal, build, plan
from .auto_inject import Inject
from .conditions import ConfigResolver, config_resolver_from
from .errors import (
    CircularDependencyError,
    ConfigResolutionError,
    DeclarationError,
    DuplicateBindingError,
    Location,
    MissingBindingError,
    NodewireError,
    OverrideError,
    SignatureError,
    UnsupportedNodeError,
)
from .introspection import In
from .metadata import MetadataRegistry, MetadataValue
from .model import CompiledGraph, ParamTag, TagSet
from .nodes import (
    AutoGroup,
    AutoInject,
    Case,
    Decorate,
    Default,
    DefaultCase,
    If,
    Invoke,
    Module,
    OnStart,
    OnStop,
    Options,
    Populate,
    Provide,
    Ref,
    Replace,
    ReplaceAfter,
    ReplaceBefore,
    Supply,
    Switch,
    When,
    WhenCase,
)
from .options import (
    METADATA_GROUP,
    As,
    AsSelf,
    AutoGroupAsSelf,
    AutoGroupFilter,
    AutoGroupIgnore,
    AutoGroupIgnoreType,
    AutoInjectIgnore,
    Both,
    Group,
    Metadata,
    MetadataGroup,
    Name,
    Optional,
    Params,
    Priority,
    PriorityLevel,
    Private,
    Public,
    Self,
    Skip,
    ToGroup,
    Variadic,
    VariadicGroup,
    between,
)
from .runtime import Container, Lifecycle

__all__ = [
    "METADATA_GROUP",
    "App",
    "As",
    "AsSelf",
    "AutoGroup",
    "AutoGroupAsSelf",
    "AutoGroupFilter",
    "AutoGroupIgnore",
    "AutoGroupIgnoreType",
    "AutoInject",
    "AutoInjectIgnore",
    "Both",
    "Case",
    "CircularDependencyError",
    "CompiledGraph",
    "ConfigResolutionError",
    "ConfigResolver",
    "Container",
    "DeclarationError",
    "Decorate",
    "Default",
    "DefaultCase",
    "DuplicateBindingError",
    "Group",
    "If",
    "In",
    "Inject",
    "Invoke",
    "Lifecycle",
    "Location",
    "Metadata",
    "MetadataGroup",
    "MetadataRegistry",
    "MetadataValue",
    "MissingBindingError",
    "Module",
    "Name",
    "NodewireError",
    "OnStart",
    "OnStop",
    "Optional",
    "Options",
    "OverrideError",
    "ParamTag",
    "Params",
    "Populate",
    "Priority",
    "PriorityLevel",
    "Private",
    "Provide",
    "Public",
    "Ref",
    "Replace",
    "ReplaceAfter",
    "ReplaceBefore",
    "RestartSignal",
    "Self",
    "SignatureError",
    "Skip",
    "Supply",
    "Switch",
    "TagSet",
    "ToGroup",
    "UnsupportedNodeError",
    "Variadic",
    "VariadicGroup",
    "When",
    "WhenCase",
    "between",
    "build",
    "config_resolver_from",
    "plan",
]
