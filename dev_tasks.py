#!/usr/bin/env python3
"""
Development tasks for BerryRPC.

    python dev_tasks.py <command>

Tests run against in-memory SQLite unless BERRYRPC_TEST_DATABASE_URL is set
(in the environment or a .env file).
"""

import os
import shutil
import subprocess
import sys

PATHS = "berryrpc tests examples"


def run_command(command, check=True):
    print(f"Running: {command}")
    result = subprocess.run(command, shell=True, check=check)
    return result.returncode == 0


def clean():
    print("Cleaning build artifacts...")
    for path in ["build", "dist", ".pytest_cache", ".mypy_cache", "htmlcov"]:
        shutil.rmtree(path, ignore_errors=True)
    if os.path.exists(".coverage"):
        os.remove(".coverage")
    for name in os.listdir("."):
        if name.endswith(".egg-info"):
            shutil.rmtree(name, ignore_errors=True)
    for root, dirs, _ in os.walk("."):
        if "__pycache__" in dirs:
            shutil.rmtree(os.path.join(root, "__pycache__"), ignore_errors=True)
    print("Clean completed.")


def format_code():
    print("Formatting code...")
    run_command(f"black {PATHS}")
    run_command(f"isort {PATHS}")


def lint():
    print("Running linting...")
    results = [
        run_command("mypy berryrpc", check=False),
        run_command(f"flake8 {PATHS}", check=False),
    ]
    if not all(results):
        print("Linting failed.")
        sys.exit(1)
    print("Linting passed.")


def test():
    print("Running tests...")
    extra = " ".join(sys.argv[2:])
    ok = run_command(f"pytest tests/ -v --cov=berryrpc --cov-report=term {extra}".strip(), check=False)
    if not ok:
        sys.exit(1)


def example():
    run_command("python -m examples.basic_example")


def serve():
    run_command("python -m examples.main")


def build():
    print("Building package...")
    clean()
    run_command("python -m build")


def install_dev():
    print("Installing in development mode...")
    run_command("pip install -e .[dev,test,examples]")


COMMANDS = {
    "clean": clean,
    "format": format_code,
    "lint": lint,
    "test": test,
    "example": example,
    "serve": serve,
    "build": build,
    "install-dev": install_dev,
    "all": lambda: (format_code(), lint(), test(), build()),
}


def main():
    if len(sys.argv) < 2 or sys.argv[1] not in COMMANDS:
        print("Usage: python dev_tasks.py <command>")
        print("Commands: " + ", ".join(COMMANDS))
        sys.exit(1)
    COMMANDS[sys.argv[1]]()


if __name__ == "__main__":
    main()
