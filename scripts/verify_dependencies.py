#!/usr/bin/env python3
"""
Dependency Verification Script
Checks that the runtime and test dependencies of the career pipeline import.
"""

import sys
from importlib import import_module

# Runtime and test dependencies to verify
DEPENDENCIES = [
    ("httpx", "HTTPX"),
    ("aiolimiter", "aiolimiter"),
    ("tenacity", "Tenacity"),
    ("pydantic", "Pydantic"),
    ("structlog", "Structlog"),
    ("jinja2", "Jinja2"),
    ("rich", "Rich"),
    ("dotenv", "python-dotenv"),
    ("pytest", "Pytest"),
    ("pytest_asyncio", "pytest-asyncio"),
    ("pytest_mock", "pytest-mock"),
]


def verify_imports():
    """Import each dependency and exit non-zero if any is missing."""
    failed = []

    print("Verifying dependencies...\n")

    for module_name, display_name in DEPENDENCIES:
        try:
            import_module(module_name)
            print(f"[OK] {display_name}")
        except ImportError as e:
            print(f"[FAILED] {display_name}: {e}")
            failed.append(display_name)

    print(f"\n{'='*60}")

    if failed:
        print(f"[ERROR] {len(failed)} dependencies failed:")
        for name in failed:
            print(f"   - {name}")
        sys.exit(1)
    else:
        print("[SUCCESS] All dependencies verified successfully!")
        sys.exit(0)


if __name__ == "__main__":
    verify_imports()
