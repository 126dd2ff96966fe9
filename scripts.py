#!/usr/bin/env python3
"""
uv-backed development commands for nodewire.

Usage: python scripts.py <command>
"""

import subprocess
import sys
from collections.abc import Callable
from pathlib import Path

Step = tuple[list[str], str]


def run_command(cmd: list[str], description: str) -> bool:
    print(f"\n🔄 {description}: {' '.join(cmd)}")
    try:
        subprocess.run(cmd, check=True)
    except subprocess.CalledProcessError as e:
        print(f"❌ {description} exited with {e.returncode}")
        return False
    except FileNotFoundError:
        print(f"❌ {cmd[0]} is not installed")
        return False
    print(f"✅ {description}")
    return True


def test_steps() -> list[Step]:
    return [(["uv", "run", "pytest", "-v"], "pytest")]


def lint_steps() -> list[Step]:
    return [
        (["uv", "run", "ruff", "check", "."], "ruff check"),
        (["uv", "run", "ruff", "format", "--check", "."], "ruff format"),
    ]


def typecheck_steps() -> list[Step]:
    return [(["uv", "run", tool, "src/nodewire/"], tool) for tool in ("mypy", "pyright")]


def demo_steps() -> list[Step]:
    # Files starting with an underscore are helpers, not demos.
    demos = sorted(p for p in Path("demo").glob("*.py") if not p.name.startswith("_"))
    return [(["uv", "run", "python", str(p)], f"demo {p.name}") for p in demos]


def plan_steps() -> list[Step]:
    return [(["uv", "run", "python", "demo/demo.py", "--plan"], "demo plan")]


COMMANDS: dict[str, Callable[[], list[Step]]] = {
    "test": test_steps,
    "lint": lint_steps,
    "typecheck": typecheck_steps,
    "demos": demo_steps,
    "plan": plan_steps,
}

# Run by "check", in this order.
CHECKED = ("test", "lint", "typecheck", "demos")


def run_steps(steps: list[Step]) -> bool:
    results = [run_command(cmd, description) for cmd, description in steps]
    return all(results)


def check_all() -> int:
    results = {name: run_steps(COMMANDS[name]()) for name in CHECKED}
    print("\nSummary:")
    for name, passed in results.items():
        print(f"  {name:<10} {'✅ PASS' if passed else '❌ FAIL'}")
    if not all(results.values()):
        print("\n💡 ruff can fix most lint issues: uv run ruff check --fix . && uv run ruff format .")
        return 1
    return 0


def main(argv: list[str]) -> int:
    available = ", ".join([*COMMANDS, "check"])
    if len(argv) != 1:
        print(f"Usage: python scripts.py <command>\nAvailable commands: {available}")
        return 1
    command = argv[0]
    if command == "check":
        return check_all()
    if command not in COMMANDS:
        print(f"Unknown command: {command}\nAvailable commands: {available}")
        return 1
    return 0 if run_steps(COMMANDS[command]()) else 1


if __name__ == "__main__":
    sys.exit(main(sys.argv[1:]))
