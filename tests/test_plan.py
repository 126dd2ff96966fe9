"""
Tests for the plan renderer.
"""

import unittest

from nodewire import (
    App,
    AutoGroup,
    Case,
    Default,
    If,
    Invoke,
    Module,
    Private,
    Provide,
    Public,
    Replace,
    ReplaceAfter,
    Supply,
    Switch,
    plan,
)


class Database:
    pass


class Handler:
    pass


class EchoHandler(Handler):
    pass


def use(db: Database) -> None:
    pass


class TestPlanLayout(unittest.TestCase):
    def test_tree_shape(self) -> None:
        """Children are indented below their parent with ASCII branches."""
        text = plan(
            Module("db", Provide(Database)),
            If(False, Provide(Handler)),
            Invoke(use),
        )
        lines = text.splitlines()
        self.assertEqual(lines[0], '|-- Module "db"')
        self.assertEqual(lines[1], "|   `-- Provide Database tags=[Database]")
        self.assertEqual(lines[2], "|-- If/When (skipped)")
        self.assertTrue(lines[3].startswith("`-- Invoke use("))
        self.assertEqual(len(lines), 4)

    def test_nested_indentation(self) -> None:
        text = plan(Module("outer", Module("inner", Supply(Database())), Provide(Handler)))
        self.assertEqual(
            text.splitlines(),
            [
                '`-- Module "outer"',
                '    |-- Module "inner"',
                "    |   `-- Supply Database tags=[Database]",
                "    `-- Provide Handler tags=[Handler]",
            ],
        )

    def test_active_condition_shows_children(self) -> None:
        text = plan(If(True, Provide(Database)))
        self.assertEqual(text.splitlines(), ["`-- If", "    `-- Provide Database tags=[Database]"])

    def test_switch_without_match(self) -> None:
        text = plan(Switch(Case(False, Provide(Database))))
        self.assertEqual(text, "`-- Switch (no match)\n")

    def test_empty_tree(self) -> None:
        self.assertEqual(plan(), "")


class TestPlanLabels(unittest.TestCase):
    def test_auto_group_rule_and_member(self) -> None:
        """Auto-group rules are shown and already attached to bindings in scope."""
        lines = plan(AutoGroup(Handler, "handlers"), Provide(EchoHandler)).splitlines()
        self.assertEqual(lines[0], '|-- AutoGroup Handler -> "handlers"')
        self.assertEqual(lines[1], "`-- Provide EchoHandler tags=[EchoHandler, Handler group=handlers]")

    def test_overrides(self) -> None:
        lines = plan(
            Provide(Database),
            Replace(Database()),
            ReplaceAfter(Database()),
            Default(Handler()),
        ).splitlines()
        self.assertEqual(lines[1], "|-- Replace Database tags=[Database] all")
        self.assertEqual(lines[2], "|-- Replace Database tags=[Database] after")
        self.assertEqual(lines[3], "`-- Default Handler tags=[Handler]")

    def test_invalid_binding_rendered_inline(self) -> None:
        """A node with an invalid declaration shows its error; the rest still renders."""
        lines = plan(Provide(Database, Private(), Public()), Provide(Handler)).splitlines()
        self.assertEqual(lines[0], "|-- Provide <error: Private and Public cannot both be set>")
        self.assertEqual(lines[1], "`-- Provide Handler tags=[Handler]")

    def test_app_plan_matches_function(self) -> None:
        nodes = (Module("db", Provide(Database)),)
        self.assertEqual(App(*nodes).plan(), plan(*nodes))
