"""
Tests for module scoping: auto-group propagation and private bindings.
"""

import unittest

from nodewire import (
    AutoGroup,
    AutoGroupIgnore,
    AutoGroupIgnoreType,
    Container,
    Group,
    MissingBindingError,
    Module,
    Options,
    Populate,
    Private,
    Provide,
    Ref,
    TagSet,
    build,
)


class Contract:
    pass


class Impl(Contract):
    pass


class Sibling(Contract):
    pass


class Other(Contract):
    pass


class Secret:
    pass


class Consumer:
    def __init__(self, secret: Secret):
        self.secret = secret


def members(graph, contract, group):
    """Concrete targets of the bindings exported into ``group``."""
    key = TagSet(contract, group=group)
    return [b.target for b in graph.provides() if key in b.exports]


class TestAutoGroupScope(unittest.TestCase):
    def test_rule_in_child_does_not_leak(self) -> None:
        """A rule declared inside a module does not affect the parent's bindings."""
        graph = build(
            Provide(Sibling),
            Module("child", AutoGroup(Contract, "g"), Provide(Impl)),
        )
        self.assertEqual(members(graph, Contract, "g"), [Impl])

    def test_parent_rule_reaches_child(self) -> None:
        """A rule declared in the parent applies inside nested modules."""
        graph = build(
            AutoGroup(Contract, "g"),
            Provide(Sibling),
            Module("child", Provide(Impl)),
        )
        self.assertEqual(members(graph, Contract, "g"), [Sibling, Impl])

    def test_local_rule_overrides_same_key(self) -> None:
        """A same-key rule in a child replaces the inherited one there."""
        graph = build(
            AutoGroup(Contract, "g", filter=lambda tp: False),
            Provide(Sibling),
            Module("child", AutoGroup(Contract, "g"), Provide(Impl)),
        )
        self.assertEqual(members(graph, Contract, "g"), [Impl])

    def test_rule_in_options_applies_to_its_nodes(self) -> None:
        """A rule declared in an Options applies to the nodes of that Options."""
        graph = build(
            Options(AutoGroup(Contract, "g")),
            Provide(Sibling),
        )
        self.assertEqual(members(graph, Contract, "g"), [])
        graph = build(Options(AutoGroup(Contract, "g"), Provide(Sibling)))
        self.assertEqual(members(graph, Contract, "g"), [Sibling])

    def test_default_group_name(self) -> None:
        """Without a group name the contract name is used, lowercased."""
        graph = build(AutoGroup(Contract), Provide(Impl))
        self.assertEqual(members(graph, Contract, "contract"), [Impl])

    def test_auto_grouped_binding_keeps_self_export(self) -> None:
        """A binding without explicit exports stays resolvable by its own type."""
        graph = build(AutoGroup(Contract, "g"), Provide(Impl))
        (binding,) = graph.provides()
        self.assertEqual(binding.exports, (TagSet(Impl), TagSet(Contract, group="g")))

    def test_ignore_options(self) -> None:
        """AutoGroupIgnore and AutoGroupIgnoreType opt a binding out."""
        graph = build(
            AutoGroup(Contract, "g"),
            Provide(Impl, AutoGroupIgnore()),
            Provide(Sibling, AutoGroupIgnoreType(Contract, "g")),
            Provide(Other),
        )
        self.assertEqual(members(graph, Contract, "g"), [Other])


class TestEndToEnd(unittest.TestCase):
    def test_group_member_crosses_module_boundary(self) -> None:
        """A member auto-grouped inside a module is visible to a root Populate."""
        ref = Ref(list[Contract])
        graph = build(
            Module("child", AutoGroup(Contract, "g"), Provide(Impl)),
            Populate(ref, Group("g")),
        )
        Container(graph).start()
        self.assertEqual(len(ref.value), 1)
        self.assertIsInstance(ref.value[0], Impl)

    def test_private_binding_visible_inside_module_only(self) -> None:
        """A private binding serves its module but not the root."""
        graph = build(
            Module("secrets", Provide(Secret, Private()), Provide(Consumer)),
        )
        container = Container(graph)
        consumer = container.get(Consumer)
        self.assertIsInstance(consumer.secret, Secret)
        with self.assertRaises(MissingBindingError):
            container.get(Secret)

    def test_private_binding_visible_in_nested_module(self) -> None:
        """Nested modules see the private bindings of their ancestors."""
        graph = build(
            Module("outer", Provide(Secret, Private()), Module("inner", Provide(Consumer))),
        )
        self.assertIsInstance(Container(graph).get(Consumer).secret, Secret)

    def test_binding_scope_recorded(self) -> None:
        """Compiled bindings carry the names of their enclosing modules."""
        graph = build(Module("outer", Module("inner", Provide(Impl))))
        (binding,) = graph.provides()
        self.assertEqual(binding.scope, ("outer", "inner"))
