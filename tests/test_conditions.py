"""
Tests for If/When/Switch and configuration resolvers.
"""

import unittest

import pytest

from nodewire import (
    Case,
    ConfigResolutionError,
    DeclarationError,
    DefaultCase,
    If,
    Provide,
    SignatureError,
    Supply,
    Switch,
    TagSet,
    When,
    WhenCase,
    build,
    config_resolver_from,
)


class Settings:
    def __init__(self, env: str = "dev", cache: bool = False):
        self.env = env
        self.cache = cache


class Tuning:
    pass


class Cache:
    pass


class FastCache(Cache):
    pass


class SlowCache(Cache):
    pass


def cache_enabled(settings: Settings) -> bool:
    return settings.cache


def is_production(settings: Settings) -> bool:
    return settings.env == "prod"


def exports(graph) -> list[TagSet]:
    return graph.exports()


class TestIf(unittest.TestCase):
    def test_false_condition_skips_nodes(self) -> None:
        """Nodes under a false If are not compiled at all."""
        graph = build(If(False, Provide(FastCache)), Provide(SlowCache))
        self.assertEqual(exports(graph), [TagSet(SlowCache)])

    def test_true_condition_includes_nodes(self) -> None:
        graph = build(If(True, Provide(FastCache)))
        self.assertEqual(exports(graph), [TagSet(FastCache)])

    def test_skipped_branch_errors_are_ignored(self) -> None:
        """Invalid declarations under an inactive branch do not fail the build."""
        graph = build(If(False, Supply(None)), Provide(Cache))
        self.assertEqual(exports(graph), [TagSet(Cache)])


class TestWhen(unittest.TestCase):
    def test_predicate_reads_configuration(self) -> None:
        """When predicates receive configuration values by type."""
        nodes = (When(cache_enabled, Provide(FastCache)),)
        on = build(*nodes, config_resolver=config_resolver_from(Settings(cache=True)))
        off = build(*nodes, config_resolver=config_resolver_from(Settings(cache=False)))
        self.assertEqual(exports(on), [TagSet(FastCache)])
        self.assertEqual(exports(off), [])

    def test_predicate_without_params(self) -> None:
        """A parameterless predicate needs no resolver."""
        graph = build(When(lambda: True, Provide(FastCache)))
        self.assertEqual(exports(graph), [TagSet(FastCache)])

    def test_params_without_resolver(self) -> None:
        """A predicate with parameters and no resolver is a declaration error."""
        with self.assertRaises(DeclarationError) as ctx:
            build(When(cache_enabled, Provide(FastCache)))
        self.assertIn("no config resolver", ctx.exception.message)

    def test_unresolvable_parameter(self) -> None:
        """A resolver that cannot serve a type fails the build."""

        def needs_tuning(tuning: Tuning) -> bool:
            return True

        with self.assertRaises(ConfigResolutionError) as ctx:
            build(When(needs_tuning, Provide(FastCache)), config_resolver=config_resolver_from(Settings()))
        self.assertIsNotNone(ctx.exception.location)

    def test_non_bool_result(self) -> None:
        """Predicates must return a real bool."""
        with self.assertRaises(SignatureError):
            build(When(lambda: 1, Provide(FastCache)))

    def test_declared_return_must_be_bool(self) -> None:
        def wrong(settings: Settings) -> str:
            return "yes"

        with self.assertRaises(SignatureError):
            build(When(wrong, Provide(FastCache)), config_resolver=config_resolver_from(Settings()))

    def test_predicate_evaluated_once_per_build(self) -> None:
        """A predicate runs once per build even when the tree is walked repeatedly."""
        calls = []

        def counted() -> bool:
            calls.append(1)
            return True

        build(When(counted, Provide(FastCache)))
        self.assertEqual(len(calls), 1)

    def test_non_callable_predicate(self) -> None:
        with self.assertRaises(DeclarationError):
            build(When("prod", Provide(FastCache)))


class TestSwitch(unittest.TestCase):
    def test_first_matching_case_wins(self) -> None:
        graph = build(
            Switch(
                Case(False, Provide(SlowCache)),
                Case(True, Provide(FastCache)),
                Case(True, Provide(Cache)),
            )
        )
        self.assertEqual(exports(graph), [TagSet(FastCache)])

    def test_default_case(self) -> None:
        """Without a match the default branch is taken."""
        graph = build(Switch(Case(False, Provide(FastCache)), DefaultCase(Provide(SlowCache))))
        self.assertEqual(exports(graph), [TagSet(SlowCache)])

    def test_no_match_without_default(self) -> None:
        graph = build(Switch(Case(False, Provide(FastCache))))
        self.assertEqual(exports(graph), [])

    def test_when_case(self) -> None:
        """WhenCase predicates use the build's resolver."""
        graph = build(
            Switch(WhenCase(is_production, Provide(FastCache)), DefaultCase(Provide(SlowCache))),
            config_resolver=config_resolver_from(Settings(env="prod")),
        )
        self.assertEqual(exports(graph), [TagSet(FastCache)])

    def test_two_defaults(self) -> None:
        with self.assertRaises(DeclarationError):
            build(Switch(DefaultCase(Provide(FastCache)), DefaultCase(Provide(SlowCache))))


class TestConfigResolver(unittest.TestCase):
    def test_values_served_by_base_class(self) -> None:
        """Values are found by their own type and by their base classes."""
        fast = FastCache()
        resolve = config_resolver_from(fast)
        self.assertIs(resolve(FastCache), fast)
        self.assertIs(resolve(Cache), fast)

    def test_earlier_value_wins(self) -> None:
        first, second = FastCache(), SlowCache()
        self.assertIs(config_resolver_from(first, second)(Cache), first)


def test_missing_config_value() -> None:
    with pytest.raises(ConfigResolutionError, match="no configuration value of type Tuning"):
        config_resolver_from(Settings())(Tuning)
