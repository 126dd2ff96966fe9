#!/usr/bin/env python3
"""
Demonstration of nodewire.

This demo shows:
1. Constructors, supplied values and named exports
2. Modules with private bindings
3. Auto groups ordered by priority
4. Replace for test wiring
5. Conditional wiring driven by configuration
6. Plan rendering and error reporting
"""

import logging
import sys
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Annotated

from nodewire import (
    App,
    As,
    AutoGroup,
    Container,
    Group,
    Invoke,
    Lifecycle,
    Module,
    Name,
    NodewireError,
    OnStart,
    Priority,
    PriorityLevel,
    Private,
    Provide,
    Public,
    Replace,
    Supply,
    When,
    config_resolver_from,
)


@dataclass
class Config:
    """Application configuration."""

    app_name: str
    debug: bool = False


class Database(ABC):
    @abstractmethod
    def query(self, sql: str) -> str:
        pass


class PostgresDB(Database):
    def __init__(self, dsn: Annotated[str, Name("dsn")]):
        self.dsn = dsn

    def query(self, sql: str) -> str:
        return f"PostgreSQL[{self.dsn}]: {sql}"


class InMemoryDB(Database):
    def query(self, sql: str) -> str:
        return f"InMemoryDB: {sql}"


class Tracer:
    def __init__(self, log: logging.Logger):
        self.log = log

    def trace(self, message: str) -> None:
        self.log.info("trace: %s", message)


class UserService:
    def __init__(self, database: Database, log: logging.Logger):
        self.database = database
        self.log = log

    def create_user(self, username: str) -> str:
        self.log.info("creating user %s", username)
        return self.database.query(f"INSERT INTO users (name) VALUES ('{username}')")


class Command(ABC):
    @abstractmethod
    def execute(self) -> str:
        pass


class StartCommand(Command):
    def execute(self) -> str:
        return "Application started"


class StatusCommand(Command):
    def execute(self) -> str:
        return "Application is running"


class MigrateCommand(Command):
    def execute(self) -> str:
        return "Schema migrated"


def make_dsn(config: Config) -> Annotated[str, Name("dsn")]:
    if config.debug:
        return "postgresql://localhost:5432/testdb"
    return "postgresql://prod-server:5432/proddb"


def debug_enabled(config: Config) -> bool:
    return config.debug


def run_commands(commands: Annotated[list[Command], Group("command")], users: UserService) -> None:
    for command in commands:
        print(f"Command result: {command.execute()}")
    print(f"Result: {users.create_user('alice')}")


def trace_wiring(tracer: Tracer) -> None:
    tracer.trace("debug wiring")


def announce(lc: Lifecycle) -> None:
    lc.append(on_start=lambda: print("started"), on_stop=lambda: print("stopped"), name="announce")


def application(config: Config) -> App:
    return App(
        Supply(config),
        Module(
            "storage",
            Provide(make_dsn, As(str, "dsn"), Private()),
            Provide(PostgresDB, As(Database)),
        ),
        AutoGroup(Command),
        Provide(StartCommand),
        Provide(StatusCommand),
        Provide(MigrateCommand, Priority(PriorityLevel.EARLIEST)),
        Provide(UserService),
        When(debug_enabled, Provide(Tracer), Invoke(trace_wiring)),
        OnStart(announce),
        Invoke(run_commands),
        config_resolver=config_resolver_from(config),
    )


def main() -> None:
    """Main demo function."""
    logging.basicConfig(level=logging.INFO, format="%(name)s %(levelname)s %(message)s")
    print("=== nodewire Demo ===\n")

    prod = application(Config("ProductionApp"))

    print("1. Plan:")
    print("-" * 30)
    print(prod.plan())

    if "--plan" in sys.argv:
        return

    print("2. Production Environment:")
    print("-" * 30)
    container = Container(prod.build())
    container.start()
    container.stop()

    print("\n3. Test Environment:")
    print("-" * 30)
    test = App(*prod.nodes, Replace(InMemoryDB(), As(Database)), config_resolver=prod.config_resolver)
    container = Container(test.build())
    container.start()
    container.stop()

    print("\n4. Error Reporting:")
    print("-" * 30)
    try:
        App(Provide(PostgresDB, Private(), Public())).build()
    except NodewireError as e:
        print(f"Caught expected wiring error:\n{e}")

    print("\nDemo completed successfully!")


if __name__ == "__main__":
    main()
