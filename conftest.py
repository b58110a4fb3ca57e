"""
Pytest configuration for StagePass tests.

Provides:
- deferred_spawn fixture: collects background resolver work so tests decide
  when (and in which order) lookups finish
"""

import pytest


class DeferredSpawn:
    """Stand-in for the controller's thread spawner that runs work on demand."""

    def __init__(self):
        self.pending = []

    def __call__(self, work):
        self.pending.append(work)

    def run_next(self):
        self.pending.pop(0)()

    def run_all(self):
        while self.pending:
            self.run_next()


@pytest.fixture
def deferred_spawn():
    return DeferredSpawn()
