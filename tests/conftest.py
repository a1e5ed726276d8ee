"""Shared test fixtures."""

import pytest

from models import Policy
from scheduler import Scheduler


class StaticPolicySource:
    def __init__(self, policy=None):
        self.policy = policy
        self.refreshes = 0

    def refresh(self):
        self.refreshes += 1
        return self.policy

    def current_policy(self):
        return self.policy


def make_policy(**overrides):
    values = dict(
        parallelism=2,
        scratch_dirs=("/s0", "/s1"),
        dest_dirs=("/d0", "/d1"),
        fingerprint="fp",
        stagger_minutes=5,
        show_log=False,
        min_free_gib=0,
    )
    values.update(overrides)
    return Policy(**values)


@pytest.fixture()
def started(monkeypatch):
    """Keep admitted plots from spawning a plotter; collects them instead."""
    plots = []
    monkeypatch.setattr(Scheduler, "start", lambda self, plot: plots.append(plot))
    return plots


@pytest.fixture()
def source():
    return StaticPolicySource(make_policy())


@pytest.fixture()
def scheduler(source, started):
    return Scheduler(source)
