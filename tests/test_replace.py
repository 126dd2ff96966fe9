"""
Tests for Replace, ReplaceBefore/ReplaceAfter and Default.
"""

import unittest
from typing import Annotated

import pytest

from nodewire import (
    As,
    AutoGroup,
    Container,
    Default,
    Group,
    Invoke,
    Module,
    Name,
    OverrideError,
    Private,
    Provide,
    Replace,
    ReplaceAfter,
    ReplaceBefore,
    Supply,
    TagSet,
    build,
)
from nodewire.model import REPLACE_SUFFIX
from nodewire.replace import selector_matches


class Database:
    def __init__(self, label: str = "default"):
        self.label = label

    def __repr__(self) -> str:
        return f"Database({self.label!r})"


class Cache:
    def __init__(self, label: str = "default"):
        self.label = label


class Handler:
    pass


class Impl(Handler):
    def __init__(self, label: str = "impl"):
        self.label = label


def make_shared_db() -> Database:
    return Database("shared")


def make_impl() -> Impl:
    return Impl("real")


def run(*nodes):
    container = Container(build(*nodes))
    container.start()
    return container


class TestSelectorMatching(unittest.TestCase):
    def test_type_only_selector(self) -> None:
        """A type-only selector matches the untagged slot only."""
        self.assertTrue(selector_matches(TagSet(Database), TagSet(Database)))
        self.assertFalse(selector_matches(TagSet(Database, name="x"), TagSet(Database)))
        self.assertFalse(selector_matches(TagSet(Database, group="g"), TagSet(Database)))

    def test_named_and_grouped_selectors(self) -> None:
        """Named and grouped selectors match only their own slot."""
        self.assertTrue(selector_matches(TagSet(Database, name="x"), TagSet(Database, name="x")))
        self.assertFalse(selector_matches(TagSet(Database, group="x"), TagSet(Database, name="x")))
        self.assertTrue(selector_matches(TagSet(Database, group="g"), TagSet(Database, group="g")))

    def test_name_and_group_selector_matches_either(self) -> None:
        """A selector with a name and a group matches both slots."""
        selector = TagSet(Database, name="x", group="g")
        self.assertTrue(selector_matches(TagSet(Database, name="x"), selector))
        self.assertTrue(selector_matches(TagSet(Database, group="g"), selector))
        self.assertFalse(selector_matches(TagSet(Database), selector))

    def test_type_must_match(self) -> None:
        """Selectors never match another type."""
        self.assertFalse(selector_matches(TagSet(Cache), TagSet(Database)))


class TestReplace(unittest.TestCase):
    def test_replace_named_slot_only(self) -> None:
        """Replacing the named slot leaves the grouped slot with the original."""
        seen = {}

        def use(named: Annotated[Database, Name("x")], grouped: Annotated[list[Database], Group("g")]) -> None:
            seen["named"] = named.label
            seen["grouped"] = [db.label for db in grouped]

        run(
            Provide(make_shared_db, As(Database, "x", Group("g"))),
            Replace(Database("fake"), Name("x")),
            Invoke(use),
        )
        self.assertEqual(seen, {"named": "fake", "grouped": ["shared"]})

    def test_type_only_replace_leaves_tagged_slots(self) -> None:
        """A plain Replace affects only the untagged binding."""
        seen = {}

        def use(plain: Database, named: Annotated[Database, Name("x")]) -> None:
            seen["plain"] = plain.label
            seen["named"] = named.label

        run(
            Supply(Database("plain")),
            Provide(make_shared_db, As(Database, "x")),
            Replace(Database("fake")),
            Invoke(use),
        )
        self.assertEqual(seen, {"plain": "fake", "named": "shared"})

    def test_original_binding_is_kept(self) -> None:
        """The replacement is published under a scoped tag set next to the original."""
        graph = build(Supply(Database("orig")), Replace(Database("fake")))
        exports = graph.exports()
        self.assertIn(TagSet(Database), exports)
        scoped = [ts for ts in exports if ts.name is not None and REPLACE_SUFFIX in ts.name]
        self.assertEqual(len(scoped), 1)
        self.assertEqual(scoped[0].type, Database)

    def test_replace_reaches_nested_modules(self) -> None:
        """A Replace in the parent applies to consumers in child modules."""
        seen = []

        def use(db: Database) -> None:
            seen.append(db.label)

        run(
            Supply(Database("orig")),
            Replace(Database("fake")),
            Module("child", Invoke(use)),
        )
        self.assertEqual(seen, ["fake"])

    def test_replace_in_child_does_not_leak(self) -> None:
        """A Replace declared in a module is invisible to the parent's consumers."""
        seen = []

        def outer(db: Database) -> None:
            seen.append(("outer", db.label))

        def inner(db: Database) -> None:
            seen.append(("inner", db.label))

        run(
            Supply(Database("orig")),
            Module("child", Replace(Database("fake")), Invoke(inner)),
            Invoke(outer),
        )
        self.assertEqual(seen, [("inner", "fake"), ("outer", "orig")])

    def test_deeper_replace_wins(self) -> None:
        """Among equally specific replacements the deeper one wins."""
        seen = []

        def use(db: Database) -> None:
            seen.append(db.label)

        run(
            Supply(Database("orig")),
            Replace(Database("outer")),
            Module("child", Replace(Database("inner")), Invoke(use)),
        )
        self.assertEqual(seen, ["inner"])

    def test_more_specific_replace_wins(self) -> None:
        """Specificity outranks depth: a name+group selector beats a deeper name selector."""
        seen = {}

        def use(named: Annotated[Database, Name("x")]) -> None:
            seen["named"] = named.label

        run(
            Provide(make_shared_db, As(Database, "x")),
            Replace(Database("name-and-group"), Name("x"), Group("g")),
            Module("child", Replace(Database("name-only"), Name("x")), Invoke(use)),
        )
        self.assertEqual(seen, {"named": "name-and-group"})

    def _named_handler_label(self, *replace_options: object) -> str:
        seen = []

        def use(handler: Annotated[Handler, Name("x")]) -> None:
            seen.append(handler.label)

        run(
            Provide(make_impl, As(Handler, "x")),
            Replace(Impl("fake"), *replace_options),
            Invoke(use),
        )
        return seen[0]

    def test_name_after_as_selects_named_slot(self) -> None:
        """Name after As selects the named interface slot, as does Name before As."""
        self.assertEqual(self._named_handler_label(As(Handler), Name("x")), "fake")
        self.assertEqual(self._named_handler_label(Name("x"), As(Handler)), "fake")

    def test_one_replace_covers_each_displaced_slot(self) -> None:
        """A selector matching a named and a grouped slot replaces both."""
        seen = {}

        def use(named: Annotated[Database, Name("x")], grouped: Annotated[list[Database], Group("g")]) -> None:
            seen["named"] = named.label
            seen["grouped"] = [db.label for db in grouped]

        graph = build(
            Provide(make_shared_db, As(Database, "x", Group("g"))),
            Replace(Database("fake"), Name("x"), Group("g")),
        )
        scoped = [ts for ts in graph.exports() if REPLACE_SUFFIX in (ts.name or ts.group or "")]
        self.assertEqual(len(scoped), 2)

        run(
            Provide(make_shared_db, As(Database, "x", Group("g"))),
            Replace(Database("fake"), Name("x"), Group("g")),
            Invoke(use),
        )
        self.assertEqual(seen, {"named": "fake", "grouped": ["fake"]})

    def test_displaced_auto_group_membership_is_dropped(self) -> None:
        """A binding whose auto-group slot is replaced no longer joins that group."""
        seen = {}

        def use(handlers: Annotated[list[Handler], Group("h")], impl: Impl) -> None:
            seen["group"] = [h.label for h in handlers]
            seen["impl"] = impl.label

        nodes = (
            AutoGroup(Handler, "h"),
            Provide(make_impl),
            Replace(Impl("fake"), Group("h"), As(Handler)),
        )
        (original,) = [b for b in build(*nodes).provides() if b.target is make_impl]
        self.assertEqual(original.exports, (TagSet(Impl),))

        run(*nodes, Invoke(use))
        self.assertEqual(seen, {"group": ["fake"], "impl": "real"})


class TestReplaceOrdering(unittest.TestCase):
    def test_replace_before(self) -> None:
        """ReplaceBefore affects consumers declared before it only."""
        seen = []

        def consumer_a(db: Database) -> None:
            seen.append(("a", db.label))

        def consumer_b(db: Database) -> None:
            seen.append(("b", db.label))

        run(
            Supply(Database("orig")),
            Invoke(consumer_a),
            ReplaceBefore(Database("fake")),
            Invoke(consumer_b),
        )
        self.assertEqual(seen, [("a", "fake"), ("b", "orig")])

    def test_replace_after(self) -> None:
        """ReplaceAfter affects consumers declared after it only."""
        seen = []

        def consumer_a(db: Database) -> None:
            seen.append(("a", db.label))

        def consumer_b(db: Database) -> None:
            seen.append(("b", db.label))

        run(
            Supply(Database("orig")),
            Invoke(consumer_a),
            ReplaceAfter(Database("fake")),
            Invoke(consumer_b),
        )
        self.assertEqual(seen, [("a", "orig"), ("b", "fake")])


class TestDefault(unittest.TestCase):
    def test_default_used_when_missing(self) -> None:
        """A Default serves consumers when nothing provides the type."""
        seen = []

        def use(cache: Cache) -> None:
            seen.append(cache.label)

        run(Default(Cache("fallback")), Invoke(use))
        self.assertEqual(seen, ["fallback"])

    def test_default_yields_to_binding(self) -> None:
        """A provided binding takes precedence over a Default."""
        seen = []

        def use(cache: Cache) -> None:
            seen.append(cache.label)

        run(
            Default(Cache("fallback")),
            Supply(Cache("real")),
            Invoke(use),
        )
        self.assertEqual(seen, ["real"])

    def test_deeper_default_wins(self) -> None:
        """Of two defaults for one tag set the deeper one is used."""
        seen = []

        def use(cache: Cache) -> None:
            seen.append(cache.label)

        run(
            Default(Cache("outer")),
            Module("child", Default(Cache("inner")), Invoke(use)),
        )
        self.assertEqual(seen, ["inner"])

    def test_default_ignores_private_binding_of_sibling(self) -> None:
        """Only bindings visible from the consumer's module suppress a Default."""
        seen = []

        def use_a(handler: Handler) -> None:
            seen.append(("a", handler.label))

        def use_b(handler: Handler) -> None:
            seen.append(("b", handler.label))

        run(
            Module("a", Default(Impl("fallback"), As(Handler)), Invoke(use_a)),
            Module("b", Supply(Impl("b"), As(Handler), Private()), Invoke(use_b)),
        )
        self.assertEqual(seen, [("a", "fallback"), ("b", "b")])

    def test_default_yields_to_private_binding_in_scope(self) -> None:
        seen = []

        def use(handler: Handler) -> None:
            seen.append(handler.label)

        run(
            Module(
                "a",
                Default(Impl("fallback"), As(Handler)),
                Supply(Impl("own"), As(Handler), Private()),
                Invoke(use),
            ),
        )
        self.assertEqual(seen, ["own"])


class TestOverrideErrors(unittest.TestCase):
    def test_replace_without_target(self) -> None:
        """A Replace matching no provided binding is an error."""
        with self.assertRaises(OverrideError) as ctx:
            build(Replace(Cache("fake")))
        self.assertIn("matches no provided binding", ctx.exception.message)
        self.assertIsNotNone(ctx.exception.location)

    def test_replace_rejects_visibility(self) -> None:
        """Private/Public cannot be used on a Replace."""
        with self.assertRaises(OverrideError):
            build(Supply(Cache()), Replace(Cache("fake"), Private()))

    def test_replace_rejects_tagged_as(self) -> None:
        """Named As exports cannot be used on a Replace."""
        with self.assertRaises(OverrideError):
            build(Supply(Cache()), Replace(Cache("fake"), As(Cache, "x")))

    def test_replace_rejects_name_after_several_as(self) -> None:
        """A Name after As selects one target; with two As exports it is ambiguous."""
        with self.assertRaises(OverrideError):
            build(
                Provide(make_impl, As(Handler, "x")),
                Replace(Impl("fake"), As(Handler), Name("x"), As(Impl)),
            )

    def test_default_rejects_group(self) -> None:
        """Default cannot target a group."""
        with self.assertRaises(OverrideError):
            build(Default(Cache("fallback"), Group("caches")))


def test_replace_with_unassignable_as() -> None:
    """As on a Replace must be implemented by the replacement."""
    with pytest.raises(OverrideError, match="not assignable"):
        build(Supply(Database()), Replace(Cache(), As(Database)))
