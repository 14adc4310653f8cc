"""Top-level pytest configuration.

Keeps the repository root on ``sys.path`` so ``tests.helpers`` imports
resolve without installing the test tree.
"""

pytest_plugins = [
    "tests.fixtures.responses",
]
