"""
Storage side of model synchronization.

Any object with an async ``sync(method, target, options)`` can back a Model or
a ModelArray. ``method`` is "read", "write" or "erase" (or anything a custom
storage understands); failures are raised from the awaited coroutine.

MemoryStorage is the in-process implementation, used by tests and by
applications that keep their records locally.
"""
import asyncio
import copy
import itertools
import logging
from typing import Any, Callable, Dict, Iterable, Optional, Protocol, runtime_checkable

from modelstate.config import get_config
from modelstate.errors import RecordNotFoundError, SyncMethodError
from modelstate.events import Listener
from modelstate.model import Model
from modelstate.model_array import ModelArray

logger = logging.getLogger(__name__)


@runtime_checkable
class SyncProtocol(Protocol):
    """Contract between models and their storage."""

    async def sync(self, method: str, target: Any, options: Optional[Dict[str, Any]] = None) -> Any:
        ...


def is_stored(model: Model) -> bool:
    """Whether the model has been persisted, i.e. has an id."""
    return model.id is not None


class MemoryStorage(Listener):
    """Dict-backed storage keyed by record id.

    Records are deep-copied in and out, so stored data never aliases a model.

    - read: a Model gets its record, a ModelArray gets every record
    - write: inserts (generating an id when the model has none) or replaces,
      returns the stored record
    - erase: deletes the model's record and returns it

    Events:
    - request: {emitter, method, target, options} before the operation
    - response: {emitter, method, target, response} after it
    """
    methods = ('read', 'write', 'erase')

    def __init__(
        self,
        records: Optional[Iterable[Dict[str, Any]]] = None,
        *,
        id_attribute: Optional[str] = None,
        id_factory: Optional[Callable[[], Any]] = None,
    ):
        """
        Args:
            records: Initial records, each carrying its id
            id_attribute: Id field of the initial records (default: configured id attribute)
            id_factory: Generates ids for new records (default: the next free integer from 1)
        """
        Listener.__init__(self)
        self._records: Dict[Any, Dict[str, Any]] = {}
        self._id_factory = id_factory
        self._counter = itertools.count(1)
        id_attribute = id_attribute or get_config().id_attribute
        for record in records or ():
            self._records[record[id_attribute]] = copy.deepcopy(dict(record))

    async def sync(self, method: str, target: Any, options: Optional[Dict[str, Any]] = None) -> Any:
        if method not in self.methods:
            raise SyncMethodError(method)
        self.emit('request', emitter=self, method=method, target=target, options=options)
        await asyncio.sleep(0)
        response = getattr(self, f'_{method}')(target)
        logger.debug(f"MemoryStorage {method}: {len(self._records)} records stored")
        self.emit('response', emitter=self, method=method, target=target, response=response)
        return response

    def get(self, id: Any) -> Optional[Dict[str, Any]]:
        """Copy of the stored record, or None."""
        record = self._records.get(id)
        return copy.deepcopy(record) if record is not None else None

    def __contains__(self, id: Any) -> bool:
        return id in self._records

    def __len__(self) -> int:
        return len(self._records)

    def _read(self, target: Any) -> Any:
        if isinstance(target, ModelArray):
            return [copy.deepcopy(record) for record in self._records.values()]
        return copy.deepcopy(self._find(target))

    def _write(self, target: Any) -> Dict[str, Any]:
        if not isinstance(target, Model):
            raise TypeError(f"MemoryStorage can only write models, got {type(target).__name__}")
        record = target.to_json()
        if not is_stored(target):
            record[target.get_id_attribute()] = self._generate_id()
        self._records[record[target.get_id_attribute()]] = copy.deepcopy(record)
        return record

    def _erase(self, target: Any) -> Dict[str, Any]:
        record = self._find(target)
        del self._records[target.id]
        return record

    def _generate_id(self) -> Any:
        if self._id_factory is not None:
            return self._id_factory()
        # next integer not taken by a stored record
        for candidate in self._counter:
            if candidate not in self._records:
                return candidate

    def _find(self, target: Model) -> Dict[str, Any]:
        if not is_stored(target) or target.id not in self._records:
            raise RecordNotFoundError(target.id)
        return self._records[target.id]
