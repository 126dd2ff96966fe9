"""
Tests for binding options: exported tag sets and option conflicts.
"""

import unittest

import pytest

from nodewire import (
    As,
    DeclarationError,
    Group,
    Name,
    Populate,
    Private,
    Provide,
    Public,
    Self,
    SignatureError,
    Supply,
    TagSet,
    ToGroup,
    UnsupportedNodeError,
    build,
)
from nodewire.options import Params


class Storage:
    pass


class DiskStorage(Storage):
    pass


class Unrelated:
    pass


def make_storage() -> DiskStorage:
    return DiskStorage()


def make_pair(first: Storage, second: Unrelated) -> DiskStorage:
    return DiskStorage()


class TestExportedTagSets(unittest.TestCase):
    def test_untagged_export_is_result_type(self) -> None:
        """A constructor without options exports exactly its result type."""
        graph = build(Provide(DiskStorage))
        self.assertEqual(graph.exports(), [TagSet(DiskStorage)])

    def test_function_constructor_uses_return_annotation(self) -> None:
        """A function constructor exports its return annotation."""
        graph = build(Provide(make_storage))
        self.assertEqual(graph.exports(), [TagSet(DiskStorage)])

    def test_as_with_names_fans_out(self) -> None:
        """Each name given to As becomes its own export of the target type."""
        graph = build(Provide(DiskStorage, As(Storage, "n1", "n2")))
        self.assertEqual(graph.exports(), [TagSet(Storage, name="n1"), TagSet(Storage, name="n2")])

    def test_as_with_name_and_group(self) -> None:
        """As accepts both names and groups as fan-out tags."""
        graph = build(Provide(DiskStorage, As(Storage, "primary", Group("stores"))))
        self.assertEqual(
            graph.exports(),
            [TagSet(Storage, name="primary"), TagSet(Storage, group="stores")],
        )

    def test_as_keeps_self_only_when_asked(self) -> None:
        """As replaces the concrete export unless Self is given."""
        self.assertEqual(build(Provide(DiskStorage, As(Storage))).exports(), [TagSet(Storage)])
        self.assertEqual(
            build(Provide(DiskStorage, As(Storage), Self())).exports(),
            [TagSet(Storage), TagSet(DiskStorage)],
        )

    def test_name_applies_to_last_as(self) -> None:
        """Name after As names that export."""
        graph = build(Provide(DiskStorage, As(Storage), Name("main")))
        self.assertEqual(graph.exports(), [TagSet(Storage, name="main")])

    def test_to_group_moves_last_export(self) -> None:
        """ToGroup turns the preceding As export into a group member."""
        graph = build(Provide(DiskStorage, As(Storage), ToGroup("stores")))
        self.assertEqual(graph.exports(), [TagSet(Storage, group="stores")])

    def test_pending_name_and_group_on_base(self) -> None:
        """Name and Group without As tag the produced type."""
        graph = build(Supply(DiskStorage(), Name("disk")))
        self.assertEqual(graph.exports(), [TagSet(DiskStorage, name="disk")])

    def test_private_flag(self) -> None:
        """Private marks the compiled binding."""
        (binding,) = build(Provide(DiskStorage, Private())).provides()
        self.assertTrue(binding.private)


class TestOptionConflicts(unittest.TestCase):
    def test_private_and_public(self) -> None:
        """Private and Public on one binding is an error."""
        with self.assertRaises(DeclarationError) as ctx:
            build(Provide(DiskStorage, Private(), Public()))
        self.assertIn("Private and Public", ctx.exception.message)
        self.assertIsNotNone(ctx.exception.location)

    def test_to_group_requires_as(self) -> None:
        """ToGroup without a preceding As is an error."""
        with self.assertRaises(DeclarationError):
            build(Provide(DiskStorage, ToGroup("stores")))

    def test_name_set_twice(self) -> None:
        """Two pending names on one binding is an error."""
        with self.assertRaises(DeclarationError) as ctx:
            build(Provide(DiskStorage, Name("a"), Name("b")))
        self.assertIn("already set", ctx.exception.message)

    def test_pending_name_with_as(self) -> None:
        """A pending name cannot be mixed with As exports."""
        with self.assertRaises(DeclarationError):
            build(Provide(DiskStorage, Name("a"), As(Storage)))

    def test_as_requires_assignable_type(self) -> None:
        """As with a type the result does not implement is an error."""
        with self.assertRaises(DeclarationError) as ctx:
            build(Provide(DiskStorage, As(Unrelated)))
        self.assertIn("not assignable", ctx.exception.message)

    def test_empty_name(self) -> None:
        """Blank names are rejected."""
        with self.assertRaises(DeclarationError):
            build(Provide(DiskStorage, As(Storage, " ")))

    def test_supply_none(self) -> None:
        """Supplying None is an error."""
        with self.assertRaises(DeclarationError):
            build(Supply(None))


def test_unsupported_node_type() -> None:
    """Values that are not nodes are reported with their type."""
    with pytest.raises(UnsupportedNodeError, match="unsupported node type int"):
        build(Provide(DiskStorage), 42)


def test_populate_requires_refs() -> None:
    """Populate rejects targets that are not Ref instances."""
    with pytest.raises(DeclarationError, match="Ref"):
        build(Populate("not a ref"))


def test_params_count_hint() -> None:
    """Too few Params entries fail with a hint naming the expected count."""
    with pytest.raises(SignatureError) as info:
        build(Provide(make_pair, Params("x")))
    err = info.value
    assert "params count mismatch: expected 2, got 1" in err.message
    assert "Use Params(...) with 2 entries" in err.message
    assert err.location is not None
    assert err.target_location is not None
    assert "target signature" in str(err)
