"""
ModelArray: an ordered, id-indexed collection of models.

The array keeps at most one element per id, optionally keeps itself sorted by
a comparator, and re-emits the ``add``/``remove``/``change`` events of its
members so hosts can subscribe once for the whole collection:

    todos = ModelArray(model=Todo, comparator='order')
    todos.on('change', redraw_item)
    todos.on('update', redraw_list)
    todos.push({'_id': 1, 'order': 2}, {'_id': 2, 'order': 1})

Every mutator (list protocol included) goes through ``set``/``unset`` so the
index, the order and the events stay consistent.
"""
import functools
import logging
from collections.abc import Iterable, Mapping, MutableSequence
from typing import Any, Callable, Dict, List, Optional, Set, Tuple, Union

from modelstate.errors import StorageNotDefinedError
from modelstate.events import Event, Listener
from modelstate.interceptor import same_value
from modelstate.model import Model
from modelstate.paths import split

logger = logging.getLogger(__name__)

Comparator = Union[str, Callable[[Model, Model], int]]

_MISSING = object()

# Member events re-emitted by the array
_MEMBER_EVENTS = ('add', 'remove', 'change')


class ModelArray(Listener, MutableSequence):
    """Ordered, id-indexed collection of models.

    Attributes:
        model: Class used to build elements from plain mappings
        storage: SyncProtocol used by ``read``/``sync`` (and by members' sync)
        comparator: Field name or ``cmp(a, b)`` function keeping the order

    Events:
    - add / remove / change: re-emitted from members, detail unchanged
    - sort: {emitter} when the order changed
    - update: {emitter} when membership changed
    - sync / error: after ``read``
    - dispose: emitted by dispose()
    """

    def __init__(
        self,
        models: Any = None,
        *,
        model: Optional[type] = None,
        storage: Any = None,
        comparator: Optional[Comparator] = None,
    ):
        Listener.__init__(self)
        self.model = model or Model
        self.storage = storage if storage is not None else self.model.storage
        self.comparator = comparator if comparator is not None else self.model.comparator
        self._models: List[Model] = []
        self._by_id: Dict[Any, Model] = {}
        if models is not None:
            self.set(models)

    # ========== SEQUENCE PROTOCOL ==========

    def __getitem__(self, index):
        return self._models[index]

    def __setitem__(self, index, value) -> None:
        if isinstance(index, slice):
            start, stop, step = index.indices(len(self._models))
            if step != 1:
                raise ValueError("ModelArray does not support extended slice assignment")
            self.splice(start, max(stop - start, 0), *value)
            return
        position = self._normalize_index(index)
        current = self._models[position]
        if current is value:
            return
        if isinstance(value, Model):
            other = value if value in self else self._lookup_id(value.id)
        elif isinstance(value, Mapping):
            other = self._resolve(value)
        else:
            other = None
        # the slot would merge into another member and shrink the array
        if other is not None and other is not current:
            raise ValueError(
                f"Cannot assign to index {index}: the value is already held at index {self._index_of(other)}"
            )
        self.splice(position, 1, value)

    def __delitem__(self, index) -> None:
        if isinstance(index, slice):
            self.unset(self._models[index])
        else:
            self.unset(self._models[self._normalize_index(index)])

    def __len__(self) -> int:
        return len(self._models)

    def __iter__(self):
        return iter(self._models)

    def __contains__(self, value: Any) -> bool:
        return any(model is value for model in self._models)

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.to_json()!r})"

    def insert(self, index: int, value: Any) -> None:
        length = len(self._models)
        if index < 0:
            index = max(length + index, 0)
        self.set([value], keep=True, at=min(index, length))

    def append(self, value: Any) -> None:
        self.push(value)

    def extend(self, values: Iterable) -> None:
        self.push(*values)

    def clear(self) -> None:
        self.unset(list(self._models))

    def pop(self, index: int = -1) -> Model:
        if not self._models:
            raise IndexError("pop from empty ModelArray")
        model = self._models[index]
        self.unset(model)
        return model

    # ========== MEMBERSHIP ==========

    def set(
        self,
        models: Any = None,
        *,
        at: Optional[int] = None,
        keep: bool = False,
        skip: bool = False,
        unsorted: bool = False,
    ) -> 'ModelArray':
        """Reconcile the array with the given models.

        Existing elements (same instance or same id) are updated in place with
        ``assign``; new ones are inserted at ``at`` (default: the end). Unless
        ``keep`` is set, elements not mentioned are removed. With a comparator,
        no ``at`` and no ``unsorted`` the array is re-sorted once.

        Example:
            array.set([model1, model2])                 # replace contents
            array.set(model3, keep=True)                # add, keep the rest
            array.set({'_id': 1, 'name': 'Arthur'}, keep=True)   # update element 1

        Args:
            models: A Model, a mapping, or an iterable of them. Mappings are
                    instantiated as ``self.model(attrs, collection=self)``;
                    anything else is ignored.
            at: Insertion index for new elements
            keep: Do not remove elements missing from ``models``
            skip: Emit no array events (add/remove/sort/update)
            unsorted: Do not re-sort after the change

        Returns:
            self
        """
        sortable = self.comparator is not None and at is None and not unsorted
        members, to_add, resort = self._parse(models, sortable)

        removed: List[Model] = []
        if not keep:
            stale = [model for model in self._models if model not in members]
            removed = self._detach(stale, silent=skip)

        if to_add:
            if sortable:
                resort = True
            if at is None:
                self._models.extend(to_add)
            else:
                self._models[at:at] = to_add

        order_changed = False
        if resort:
            before = list(self._models)
            self._models.sort(key=self._sort_key(self.comparator))
            order_changed = any(a is not b for a, b in zip(before, self._models))

        logger.debug(
            f"{type(self).__name__} set: added={len(to_add)} removed={len(removed)} "
            f"resorted={order_changed}"
        )
        if skip:
            return self
        for model in to_add:
            model.emit('add', emitter=model, at=self._index_of(model), array=self, sort=resort)
        if order_changed:
            self.emit('sort', emitter=self)
        if to_add or removed:
            self.emit('update', emitter=self)
        return self

    def unset(self, models: Any) -> 'ModelArray':
        """Remove models, given as instances, ids or mappings carrying an id.

        Emits ``remove`` per removed element and one ``update``; non-members
        are ignored without any event.
        """
        targets = []
        for item in _as_list(models):
            model = self._resolve(item)
            if model is not None:
                targets.append(model)
        if self._detach(targets, silent=False):
            self.emit('update', emitter=self)
        return self

    def push(self, *models: Any) -> 'ModelArray':
        """Add models to the end (or into sort position)."""
        return self.set(list(models), keep=True)

    def unshift(self, *models: Any) -> 'ModelArray':
        """Add models to the beginning."""
        return self.set(list(models), keep=True, at=0)

    def shift(self) -> Model:
        """Remove and return the first model."""
        if not self._models:
            raise IndexError("shift from empty ModelArray")
        return self.pop(0)

    def splice(self, start: int, delete_count: Optional[int] = None, *items: Any) -> List[Model]:
        """Remove ``delete_count`` models from ``start`` and insert ``items`` there.

        Negative ``start`` counts from the end. Without ``delete_count``
        everything from ``start`` on is removed.

        Returns:
            The removed models
        """
        length = len(self._models)
        if start < 0:
            start = max(length + start, 0)
        start = min(start, length)
        if delete_count is None:
            delete_count = length - start
        removed = self._models[start:start + max(delete_count, 0)]
        if removed:
            self.unset(removed)
        if items:
            self.set(list(items), keep=True, at=start)
        return removed

    # ========== ORDER ==========

    def sort(self, comparator: Optional[Comparator] = None, *, descending: bool = False) -> 'ModelArray':
        """Sort by ``comparator`` or the array's own comparator.

        Field comparators order missing/None values last (first when
        descending). Without any comparator this is a no-op and emits nothing.
        """
        comparator = comparator if comparator is not None else self.comparator
        if comparator is None:
            return self
        self._models.sort(key=self._sort_key(comparator, descending))
        logger.debug(f"{type(self).__name__} sorted by {comparator!r} descending={descending}")
        self.emit('sort', emitter=self, comparator=comparator, descending=descending)
        return self

    def reverse(self) -> None:
        self._models.reverse()
        self.emit('sort', emitter=self)

    # ========== LOOKUP ==========

    def get(self, id: Any) -> Optional[Model]:
        """Element with the given id, or None."""
        return self._by_id.get(id)

    def where(self, attributes: Optional[Mapping] = None, first: bool = False) -> Any:
        """Elements whose fields strictly equal every given attribute.

        No criteria yields an empty result, not the whole array.

        Returns:
            A list of matches, or with ``first`` the first match or None
        """
        if not attributes:
            return None if first else []
        matches = (
            model for model in self._models
            if all(same_value(model.get(key, _MISSING), value) for key, value in attributes.items())
        )
        if first:
            return next(matches, None)
        return list(matches)

    def to_json(self) -> List[Dict[str, Any]]:
        return [model.to_json() for model in self._models]

    # ========== SYNCHRONIZATION ==========

    async def read(self, *, silent: bool = False, **options: Any) -> Any:
        """Replace the contents with the stored records (applied with ``set``)."""
        try:
            response = await self.sync('read', options)
            self.set(response)
        except Exception as error:
            self.emit('error', emitter=self, error=error, options=options)
            raise
        if not silent:
            self.emit('sync', emitter=self, response=response, options=options, operation='read')
        return response

    async def sync(self, method: str, options: Optional[Dict[str, Any]] = None) -> Any:
        if self.storage is None:
            raise StorageNotDefinedError()
        logger.debug(f"{type(self).__name__} sync: method={method!r}")
        return await self.storage.sync(method, self, options)

    # ========== LIFECYCLE ==========

    def dispose(self, silent: bool = False) -> 'ModelArray':
        """Emit ``dispose`` (unless silent), release every member and drop all listeners.

        Members are detached without ``remove`` events; the array ends up empty.
        """
        if not silent:
            self.emit('dispose', emitter=self)
        for model in self._models:
            self._remove_reference(model)
        self._models.clear()
        self._by_id.clear()
        self.off()
        return self

    # ========== INTERNALS ==========

    def _parse(self, models: Any, sortable: bool) -> Tuple[Set[Model], List[Model], bool]:
        id_attribute = self.model.get_id_attribute()
        sort_field = self.comparator if isinstance(self.comparator, str) else None
        members: Set[Model] = set()
        to_add: List[Model] = []
        resort = False
        for item in _as_list(models):
            if isinstance(item, Model):
                if item in members or item in self:
                    existing = item
                else:
                    existing = self._lookup_id(item.id)
            elif isinstance(item, Mapping):
                existing = self._lookup_id(item.get(id_attribute))
            else:
                logger.debug(f"{type(self).__name__} ignoring non-model item {item!r}")
                continue

            if existing is not None:
                members.add(existing)
                if item is not existing and self._update(existing, item, sort_field) and sortable:
                    resort = True
                continue

            model = item if isinstance(item, Model) else self.model(item, collection=self)
            self._add_reference(model)
            members.add(model)
            to_add.append(model)
        return members, to_add, resort

    def _update(self, existing: Model, item: Any, sort_field: Optional[str]) -> bool:
        """Assign ``item`` onto ``existing``; True when the order may have changed."""
        attributes = item.to_json() if isinstance(item, Model) else item
        if sort_field is None:
            existing.assign(attributes)
            return True
        before = existing.get(sort_field)
        existing.assign(attributes)
        return not same_value(before, existing.get(sort_field))

    def _detach(self, models: List[Model], silent: bool) -> List[Model]:
        removed = []
        for model in models:
            index = self._index_of(model)
            if index is None:
                continue
            del self._models[index]
            removed.append(model)
            if not silent:
                model.emit('remove', emitter=model, index=index, array=self)
            self._remove_reference(model)
        return removed

    def _add_reference(self, model: Model) -> None:
        model.collection = self
        if model.id is not None:
            self._by_id[model.id] = model
        for event_type in _MEMBER_EVENTS:
            model.on(event_type, self._on_model_event)

    def _remove_reference(self, model: Model) -> None:
        if model.id is not None and self._by_id.get(model.id) is model:
            del self._by_id[model.id]
        if model.collection is self:
            model.collection = None
        for event_type in _MEMBER_EVENTS:
            model.off(event_type, self._on_model_event)

    def _on_model_event(self, event: Event) -> None:
        detail = event.detail
        model = detail.get('emitter')
        if event.type in ('add', 'remove') and detail.get('array') is not self:
            return
        if event.type == 'change' and split(detail.get('path', ''))[:1] == (model.get_id_attribute(),):
            previous = detail.get('previous')
            if previous is not None and self._by_id.get(previous) is model:
                del self._by_id[previous]
            if model.id is not None:
                self._by_id[model.id] = model
        self.emit(event.type, **detail)

    def _resolve(self, item: Any) -> Optional[Model]:
        if isinstance(item, Model):
            return item if item in self else None
        if isinstance(item, Mapping):
            return self._lookup_id(item.get(self.model.get_id_attribute()))
        return self._lookup_id(item)

    def _lookup_id(self, id: Any) -> Optional[Model]:
        if id is None:
            return None
        return self._by_id.get(id)

    def _index_of(self, model: Model) -> Optional[int]:
        for index, member in enumerate(self._models):
            if member is model:
                return index
        return None

    def _normalize_index(self, index: int) -> int:
        length = len(self._models)
        position = index + length if index < 0 else index
        if not 0 <= position < length:
            raise IndexError("ModelArray index out of range")
        return position

    @staticmethod
    def _sort_key(comparator: Comparator, descending: bool = False):
        if callable(comparator):
            if descending:
                return functools.cmp_to_key(lambda a, b: comparator(b, a))
            return functools.cmp_to_key(comparator)

        def compare(first: Model, second: Model) -> int:
            a = first.get(comparator)
            b = second.get(comparator)
            if descending:
                a, b = b, a
            if a is None and b is None:
                return 0
            if a is None:
                return 1
            if b is None:
                return -1
            try:
                return (a > b) - (a < b)
            except TypeError:
                # unorderable mix, group by type name then text
                a, b = (type(a).__name__, str(a)), (type(b).__name__, str(b))
                return (a > b) - (a < b)
        return functools.cmp_to_key(compare)


def _as_list(value: Any) -> List[Any]:
    if value is None:
        return []
    if isinstance(value, (Model, Mapping, str, bytes)):
        return [value]
    if isinstance(value, Iterable):
        return list(value)
    return [value]
