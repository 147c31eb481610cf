"""Shared fixtures for wizard engine tests."""

import pytest
from stepwizard.engine.graph import StepGraph
from stepwizard.engine.schema import StepDefinition


@pytest.fixture
def linear_steps():
    """start -> middle -> end, end is terminal."""
    return {
        'start': StepDefinition(name='start', next=['middle']),
        'middle': StepDefinition(name='middle', next=['end']),
        'end': StepDefinition(name='end', next=[]),
    }


@pytest.fixture
def linear_graph(linear_steps):
    return StepGraph(linear_steps)


@pytest.fixture
def recorder():
    """Listener that records (kind, step) pairs."""
    class Recorder:
        def __init__(self):
            self.events = []

        def __call__(self, event):
            self.events.append((event.kind, event.step))

    return Recorder()
