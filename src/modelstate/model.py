"""
Model: the observed record.

A Model is a mutable mapping of attribute names to values that reports every
change, including changes deep inside nested dicts and lists:

    model = Model({'answer': 42, 'person': {'name': 'Zaphod'}})
    model.on('change', lambda event: print(event.detail['path']))
    model.answer = 1                  # prints ":answer"
    model.person['name'] = 'Ford'     # prints ":person:name"

Attribute access and item access address the same data. Anything living in
the instance ``__dict__`` or on the class (methods, properties, names passed to
``define_private``) is private metadata: never tracked, never serialized.
Fields named like a method (``items``, ``read``, ...) are reachable through
item access only; assigning them as attributes raises AttributeError.

Models synchronize with a storage implementing the sync protocol
(``modelstate.storage.SyncProtocol``) through ``read``/``write``/``erase``.
"""
import inspect
import logging
import weakref
from collections.abc import Mapping, MutableMapping
from typing import Any, Dict, Iterator, Optional, TYPE_CHECKING

from modelstate.config import get_config
from modelstate.errors import StorageNotDefinedError
from modelstate.events import Listener
from modelstate.interceptor import ObservedDict, is_observable, to_plain
from modelstate.paths import PathTracker

if TYPE_CHECKING:
    from modelstate.model_array import ModelArray
    from modelstate.storage import SyncProtocol

logger = logging.getLogger(__name__)

_MISSING = object()

# Names usable as ``method`` when applying a storage response
_APPLY_METHODS = ('set', 'assign', 'merge')

# Instance attributes created by Model.__init__
_INTERNAL_NAMES = frozenset({
    '_listeners', '_paths', '_data', '_private', '_private_names', '_collection',
})

# Class-level settings that may be overridden per instance
_CLASS_SETTINGS = frozenset({'storage', 'id_attribute', 'comparator'})


class Model(Listener, MutableMapping):
    """Observed attribute mapping with storage synchronization.

    Class attributes:
    - storage: default SyncProtocol for instances of the class
    - id_attribute: field backing ``id`` (None = configured default, "_id")
    - comparator: default ordering for ModelArrays of this class

    Events:
    - change: {emitter, path, previous} for every changed field
    - change<path>: same detail, scoped by path (e.g. "change:person:name")
    - sync: {emitter, response, options, operation} after read/write/erase
    - error: {emitter, error, options} when read/write/erase fails
    - add / remove: emitted by a ModelArray when the model joins or leaves it
    - dispose: emitted by dispose(), and by erase() unless keep=True
    """
    storage: Optional['SyncProtocol'] = None
    id_attribute: Optional[str] = None
    comparator: Any = None

    def __init__(
        self,
        attributes: Optional[Mapping] = None,
        *,
        collection: Optional['ModelArray'] = None,
        storage: Optional['SyncProtocol'] = None,
    ):
        """
        Args:
            attributes: Initial attributes. A Model is cloned via to_json().
            collection: Owning ModelArray (set when built by ModelArray.set)
            storage: Instance-level storage, used when no collection storage applies
        """
        Listener.__init__(self)
        object.__setattr__(self, '_paths', PathTracker())
        object.__setattr__(self, '_private', {})
        object.__setattr__(self, '_private_names', set(_INTERNAL_NAMES))
        object.__setattr__(self, '_collection', None)
        root = ObservedDict()
        root._bind(self, '')
        object.__setattr__(self, '_data', root)
        if storage is not None:
            object.__setattr__(self, 'storage', storage)
        if collection is not None:
            self.collection = collection
        if attributes is not None:
            self.assign(attributes)

    # ========== ATTRIBUTE PROTOCOL ==========

    def __getattr__(self, name: str) -> Any:
        # Only reached when normal lookup fails, i.e. for data attributes
        if name.startswith('__'):
            raise AttributeError(name)
        data = self.__dict__.get('_data')
        if data is not None and dict.__contains__(data, name):
            return dict.__getitem__(data, name)
        raise AttributeError(f"{type(self).__name__!r} object has no attribute {name!r}")

    def __setattr__(self, name: str, value: Any) -> None:
        if name in self.__dict__:
            object.__setattr__(self, name, value)
        elif hasattr(type(self), name):
            if name not in _CLASS_SETTINGS and inspect.isroutine(inspect.getattr_static(type(self), name)):
                raise AttributeError(
                    f"{name!r} is a {type(self).__name__} method; "
                    f"set the field with item access: model[{name!r}] = value"
                )
            object.__setattr__(self, name, value)
        else:
            self[name] = value

    def __delattr__(self, name: str) -> None:
        # private metadata cannot be deleted
        if name in self._private_names or (name not in self.__dict__ and hasattr(type(self), name)):
            return
        if name in self.__dict__:
            object.__delattr__(self, name)
            return
        del self[name]

    # ========== MAPPING PROTOCOL ==========

    def __getitem__(self, key: Any) -> Any:
        if not isinstance(key, str):
            return self._private[key]
        return dict.__getitem__(self._data, key)

    def __setitem__(self, key: Any, value: Any) -> None:
        if not isinstance(key, str):
            self._private[key] = value
            return
        self._data[key] = value

    def __delitem__(self, key: Any) -> None:
        # private keys cannot be deleted, deleting a missing key is a no-op
        if not isinstance(key, str):
            return
        if dict.__contains__(self._data, key):
            del self._data[key]

    def __contains__(self, key: Any) -> bool:
        return isinstance(key, str) and dict.__contains__(self._data, key)

    def __iter__(self) -> Iterator[str]:
        return iter(dict.keys(self._data))

    def __len__(self) -> int:
        return dict.__len__(self._data)

    # Models are entities: equality is identity, so collections can index them
    def __eq__(self, other: Any) -> bool:
        return self is other

    def __ne__(self, other: Any) -> bool:
        return self is not other

    __hash__ = object.__hash__

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.to_json()!r})"

    # ========== IDENTITY AND OWNERSHIP ==========

    @classmethod
    def get_id_attribute(cls) -> str:
        """Field backing ``id`` for this class."""
        return cls.id_attribute or get_config().id_attribute

    @property
    def id(self) -> Any:
        """The model's permanent id (the value of its id field)."""
        return dict.get(self._data, self.get_id_attribute())

    @id.setter
    def id(self, value: Any) -> None:
        self[self.get_id_attribute()] = value

    @property
    def collection(self) -> Optional['ModelArray']:
        """The ModelArray currently owning this model, if any."""
        ref = self._collection
        return ref() if ref is not None else None

    @collection.setter
    def collection(self, value: Optional['ModelArray']) -> None:
        object.__setattr__(self, '_collection', weakref.ref(value) if value is not None else None)

    @staticmethod
    def define_private(model: 'Model', properties: Mapping) -> None:
        """Attach private metadata to a model.

        String names become instance attributes, any other hashable key is
        stored in the private key table (read back with ``model[key]``).
        Private values never emit changes, are left out of to_json(), and
        cannot be deleted.

        Example:
            Model.define_private(model, {'view': widget})
            model.view          # widget
            'view' in model     # False
        """
        for key, value in properties.items():
            if isinstance(key, str):
                object.__setattr__(model, key, value)
                model._private_names.add(key)
            else:
                model._private[key] = value

    # ========== CHANGE NOTIFICATION ==========

    def _notify_change(self, path: str, previous: Any) -> None:
        logger.debug(f"{type(self).__name__} change: path={path!r} previous={previous!r}")
        self.emit('change', emitter=self, path=path, previous=previous)
        self.emit(f'change{path}', emitter=self, path=path, previous=previous)

    # ========== ATTRIBUTE OPERATIONS ==========

    def set(self, attributes: Optional[Mapping] = None) -> 'Model':
        """Replace all attributes with the given ones.

        Keys missing from ``attributes`` are deleted, the rest are assigned.
        One change event per differing field.
        """
        attributes = _as_mapping(attributes)
        for key in list(self):
            if key not in attributes:
                del self[key]
        return self.assign(attributes)

    def assign(self, attributes: Optional[Mapping] = None) -> 'Model':
        """Shallow-merge the given attributes. One change event per differing field."""
        for key, value in _as_mapping(attributes).items():
            self[key] = value
        return self

    def merge(self, source: Any, target: Any = None) -> Any:
        """Deep-merge ``source`` into ``target`` (the model by default).

        Dicts are merged key by key, lists index by index (the target keeps
        items beyond the source's length). Only leaves that actually change
        emit change events.

        Example:
            model = Model({'person': {'name': 'Arthur'}})
            model.merge({'person': {'surname': 'Dent'}})
            # {'person': {'name': 'Arthur', 'surname': 'Dent'}}

        Returns:
            The target
        """
        if target is None:
            target = self
        if isinstance(source, Model):
            source = source.to_json()
        entries = enumerate(source) if isinstance(source, list) else source.items()
        for key, current in entries:
            existing = _lookup(target, key)
            if _mergeable(existing, current):
                self.merge(current, existing)
            elif isinstance(target, list) and key >= len(target):
                target.append(current)
            else:
                target[key] = current
        return target

    def to_json(self) -> Dict[str, Any]:
        """Plain-dict snapshot of the public attributes, nested containers copied."""
        return to_plain(self._data)

    # ========== SYNCHRONIZATION ==========

    async def read(self, *, skip: bool = False, method: Optional[str] = None,
                   silent: bool = False, **options: Any) -> Any:
        """Reset the model from storage.

        Args:
            skip: Do not apply the response to the model
            method: How to apply the response: "set" (default), "assign" or "merge"
            silent: Do not emit the sync event
            **options: Passed through to the storage

        Returns:
            The storage response

        Raises:
            Whatever the storage raised (after emitting ``error``)
        """
        try:
            response = await self.sync('read', options)
            if not skip and isinstance(response, Mapping):
                self._apply(response, method, 'set')
        except Exception as error:
            self.emit('error', emitter=self, error=error, options=options)
            raise
        if not silent:
            self.emit('sync', emitter=self, response=response, options=options, operation='read')
        return response

    async def write(self, *, skip: bool = False, method: Optional[str] = None,
                    silent: bool = False, **options: Any) -> Any:
        """Save the model to storage.

        A non-empty mapping response is applied to the model ("assign" by
        default); anything else leaves the model untouched.
        """
        try:
            response = await self.sync('write', options)
            if not skip and isinstance(response, Mapping) and len(response):
                self._apply(response, method, 'assign')
        except Exception as error:
            self.emit('error', emitter=self, error=error, options=options)
            raise
        if not silent:
            self.emit('sync', emitter=self, response=response, options=options, operation='write')
        return response

    async def erase(self, *, keep: bool = False, silent: bool = False, **options: Any) -> Any:
        """Remove the model from storage.

        Once erased the model leaves its collection and is disposed, unless
        ``keep`` is set. A failed erase leaves it untouched.
        """
        try:
            response = await self.sync('erase', options)
        except Exception as error:
            self.emit('error', emitter=self, error=error, options=options)
            raise
        if not silent:
            self.emit('sync', emitter=self, response=response, options=options, operation='erase')
        if not keep:
            collection = self.collection
            if collection is not None:
                collection.unset(self)
            self.dispose()
        return response

    async def sync(self, method: str, options: Optional[Dict[str, Any]] = None) -> Any:
        """Delegate to the resolved storage.

        The owning collection's storage wins over the instance storage, which
        wins over the class storage.

        Raises:
            StorageNotDefinedError: No storage could be resolved
        """
        storage = self._resolve_storage()
        if storage is None:
            raise StorageNotDefinedError()
        logger.debug(f"{type(self).__name__} sync: method={method!r} id={self.id!r}")
        return await storage.sync(method, self, options)

    def _resolve_storage(self) -> Optional['SyncProtocol']:
        collection = self.collection
        if collection is not None and collection.storage is not None:
            return collection.storage
        return self.storage

    def _apply(self, response: Mapping, method: Optional[str], default: str) -> None:
        if method is None:
            method = default
        elif method not in _APPLY_METHODS:
            logger.warning(f"Unknown apply method {method!r}, using {default!r}")
            method = default
        getattr(self, method)(response)

    # ========== LIFECYCLE ==========

    def dispose(self, silent: bool = False) -> 'Model':
        """Emit ``dispose`` (unless silent) and drop every listener."""
        if not silent:
            self.emit('dispose', emitter=self)
        self.off()
        return self


def _as_mapping(attributes: Any) -> Mapping:
    if attributes is None:
        return {}
    if isinstance(attributes, Model):
        return attributes.to_json()
    return attributes


def _lookup(target: Any, key: Any) -> Any:
    if isinstance(target, list):
        return target[key] if key < len(target) else _MISSING
    return target.get(key, _MISSING)


def _mergeable(existing: Any, current: Any) -> bool:
    if not (is_observable(existing) and is_observable(current)):
        return False
    return isinstance(existing, dict) == isinstance(current, dict)
