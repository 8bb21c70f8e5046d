"""
Observable data models and collections for UI state.

This package provides the state layer a UI component binds to: records that
report every change down to deeply nested fields, ordered id-indexed
collections of them, and a pluggable async synchronization protocol.

Key Features:
- Deep change observation of nested dicts and lists, cycles included
- Path-scoped change events (":person:name")
- Ordered, comparator-sorted, id-indexed collections re-emitting member events
- Async read/write/erase through any storage implementing ``sync``
- Contextvars-based framework configuration

Quick Start:
    >>> from modelstate import Model, ModelArray, MemoryStorage
    >>>
    >>> class Todo(Model):
    ...     storage = MemoryStorage()
    ...     comparator = 'order'
    >>>
    >>> todos = ModelArray(model=Todo)
    >>> _ = todos.on('sort', lambda event: print('sorted'))
    >>> _ = todos.push({'title': 'towel', 'order': 2}, {'title': 'guide', 'order': 1})
    sorted
    >>> todos[0].title
    'guide'
    >>> _ = todos[0].on('change:title', lambda event: print(event.detail['previous']))
    >>> todos[0].title = 'Guide'
    guide

Modules:
    - model: Model, the observed record
    - model_array: ModelArray, the ordered id-indexed collection
    - interceptor: Observed dict/list wrappers behind every Model
    - paths: Change path bookkeeping
    - events: Listener base class and Event
    - storage: Sync protocol and the in-memory storage
    - config: Framework configuration
    - errors: Error hierarchy
"""

from modelstate.config import (
    ModelStateConfig,
    get_config,
    set_config,
    reset_config,
    config_context,
)

from modelstate.errors import (
    ModelStateError,
    StorageNotDefinedError,
    SyncMethodError,
    RecordNotFoundError,
)

from modelstate.events import Event, Listener

from modelstate.interceptor import (
    ObservedDict,
    ObservedList,
    is_observable,
    same_value,
)

from modelstate.model import Model
from modelstate.model_array import ModelArray

from modelstate.storage import SyncProtocol, MemoryStorage, is_stored

__all__ = [
    # Configuration
    'ModelStateConfig',
    'get_config',
    'set_config',
    'reset_config',
    'config_context',
    # Errors
    'ModelStateError',
    'StorageNotDefinedError',
    'SyncMethodError',
    'RecordNotFoundError',
    # Events
    'Event',
    'Listener',
    # Interceptor
    'ObservedDict',
    'ObservedList',
    'is_observable',
    'same_value',
    # Models
    'Model',
    'ModelArray',
    # Storage
    'SyncProtocol',
    'MemoryStorage',
    'is_stored',
]

__version__ = '1.0.0'
__description__ = 'Observable data models and collections for UI state'
