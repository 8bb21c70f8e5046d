"""Pytest configuration and shared fixtures."""
import pytest

from modelstate import MemoryStorage, Model
from modelstate.config import reset_config


class Spy:
    """Callable that records the events it receives."""

    def __init__(self):
        self.events = []

    def __call__(self, event):
        self.events.append(event)

    @property
    def called(self) -> bool:
        return bool(self.events)

    @property
    def call_count(self) -> int:
        return len(self.events)

    @property
    def last(self):
        return self.events[-1]

    def paths(self):
        return [event.detail.get('path') for event in self.events]


@pytest.fixture(autouse=True)
def restore_config():
    """Restore the default framework configuration around each test."""
    reset_config()
    yield
    reset_config()


@pytest.fixture
def model():
    """Sample model with a nested person record."""
    return Model({
        'answer': 42,
        'question': '',
        'person': {'name': 'Zaphod', 'heads': 1},
    })


@pytest.fixture
def spy():
    return Spy()


@pytest.fixture
def storage():
    """In-memory storage preloaded with two records."""
    return MemoryStorage([
        {'_id': 1, 'name': 'Arthur', 'order': 2},
        {'_id': 2, 'name': 'Ford', 'order': 1},
    ])
