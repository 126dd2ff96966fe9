"""
TagSet implementation: the identity under which a binding is published.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Any

REPLACE_SUFFIX = "__di_replace_"

_UNSAFE_CHARS = re.compile(r"[^0-9A-Za-z_]+")
_QUALIFIER = re.compile(r"(?:\w+\.|<locals>\.)+(?=\w)")


def type_name(tp: Any) -> str:
    """Readable name for a type, including generic aliases such as ``list[int]``."""
    if isinstance(tp, type) and not getattr(tp, "__args__", None):
        return tp.__qualname__.replace("<locals>.", "")
    return _QUALIFIER.sub("", str(tp))


def sanitize_type_name(tp: Any) -> str:
    """Collapse a type name into identifier characters for use inside a tag."""
    return _UNSAFE_CHARS.sub("_", type_name(tp)).strip("_")


@dataclass(frozen=True)
class TagSet:
    """
    A binding identity: a type with an optional name or group.

    Exports never carry both a name and a group; override targets may.
    """

    type: Any
    name: str | None = None
    group: str | None = None

    @property
    def is_untagged(self) -> bool:
        return self.name is None and self.group is None

    def specificity(self) -> int:
        """Rank used to pick among overrides: name+group > group > name > type."""
        if self.name is not None and self.group is not None:
            return 3
        if self.group is not None:
            return 2
        if self.name is not None:
            return 1
        return 0

    def scoped(self, replace_id: int) -> TagSet:
        """Return the tag set retagged with a replacement-unique suffix."""
        suffix = f"{REPLACE_SUFFIX}{replace_id}"
        if self.group is not None:
            return TagSet(self.type, group=self.group + suffix)
        if self.name is not None:
            return TagSet(self.type, name=self.name + suffix)
        return TagSet(self.type, name=f"{suffix}__{sanitize_type_name(self.type)}")

    def __str__(self) -> str:
        out = type_name(self.type)
        if self.name is not None:
            out += f" name={self.name}"
        if self.group is not None:
            out += f" group={self.group}"
        return out


@dataclass(frozen=True)
class ParamTag:
    """Tag attached to one parameter slot of a constructor, invoke or decorator."""

    name: str | None = None
    group: str | None = None
    optional: bool = False

    def is_empty(self) -> bool:
        return self.name is None and self.group is None and not self.optional

    def merge(self, other: ParamTag) -> ParamTag:
        """Overlay ``other`` on top of this tag."""
        return ParamTag(
            name=other.name if other.name is not None else self.name,
            group=other.group if other.group is not None else self.group,
            optional=self.optional or other.optional,
        )

    def retarget(self, tag_set: TagSet) -> ParamTag:
        """Point this tag at ``tag_set`` while keeping the optional marker."""
        return ParamTag(name=tag_set.name, group=tag_set.group, optional=self.optional)

    def __str__(self) -> str:
        parts: list[str] = []
        if self.name is not None:
            parts.append(f'name:"{self.name}"')
        if self.group is not None:
            parts.append(f'group:"{self.group}"')
        if self.optional:
            parts.append('optional:"true"')
        return " ".join(parts)
