"""
Observed containers: the interception layer under every Model.

Plain ``dict`` and ``list`` values attached to a Model are replaced by
ObservedDict / ObservedList wrappers. The wrappers behave like the builtins
but report every mutation to their owning Model, which turns it into a
``change`` event carrying the full path from the model root.

Only exact ``dict``/``list`` instances are observable. Sets, tuples,
OrderedDicts, dates, compiled patterns, custom objects and so on are stored by
reference: replacing them is a change, mutating them in place is not.

Wrapping happens when a value is attached to the graph. It is recursive and
keyed by identity, so cycles and shared references inside the attached value
map onto one wrapper each and never recurse forever.

Owners are duck-typed; a Model provides:
    _paths: PathTracker
    _notify_change(path, previous): emit the change event
"""
import copy
import logging
from typing import Any, Dict, Iterable, List, Optional, Tuple

from modelstate.paths import join

logger = logging.getLogger(__name__)


def is_observable(value: Any) -> bool:
    """True for plain dicts and lists (observed or not)."""
    return type(value) in _OBSERVABLE_TYPES


def is_observed(value: Any) -> bool:
    """True for values already wrapped by the interceptor."""
    return type(value) in _OBSERVED_TYPES


def same_value(a: Any, b: Any) -> bool:
    """Strict equality used to decide whether a write is a change.

    Identical objects are equal. Containers are equal only when identical.
    Other values must share a type and compare equal (1 and True differ,
    NaN never equals itself).
    """
    if a is b:
        return True
    if is_observable(a) or is_observable(b):
        return False
    if type(a) is not type(b):
        return False
    try:
        return bool(a == b)
    except Exception:
        # e.g. array-likes whose == is elementwise
        return False


def wrap(value: Any, path: str, owner: Any, memo: Optional[Dict[int, Any]] = None) -> Any:
    """Attach ``value`` to ``owner`` at ``path``.

    Non-observable values are returned unchanged. Plain containers are copied
    into observed wrappers; already-observed containers are re-bound to the
    owner and re-pathed together with their descendants.

    Args:
        value: The value being attached
        path: Path of the slot receiving the value
        owner: Owning model
        memo: id(original) → wrapper for the current attachment

    Returns:
        The value to store in the slot
    """
    if not is_observable(value):
        return value
    if memo is None:
        memo = {}
    key = id(value)
    if key in memo:
        return memo[key]

    if is_observed(value):
        memo[key] = value
        value._bind(owner, path)
        for child_key, child in value._children():
            wrapped = wrap(child, join(path, child_key), owner, memo)
            if wrapped is not child:
                value._raw_set(child_key, wrapped)
        return value

    if isinstance(value, dict):
        wrapper = ObservedDict()
        memo[key] = wrapper
        wrapper._bind(owner, path)
        for child_key, child in value.items():
            dict.__setitem__(wrapper, child_key, wrap(child, join(path, child_key), owner, memo))
    else:
        wrapper = ObservedList()
        memo[key] = wrapper
        wrapper._bind(owner, path)
        list.extend(wrapper, [wrap(child, join(path, index), owner, memo) for index, child in enumerate(value)])
    logger.debug(f"Wrapped {type(value).__name__} at {path!r}")
    return wrapper


def unwrap(value: Any, path: str, owner: Any) -> None:
    """Detach ``value`` that used to live at ``path``.

    Only the slot at ``path`` (and the slots below it) is dropped, for the
    wrapper and for every descendant. A container still reachable through
    another slot keeps observing under that slot; the others are released
    from the owner.
    """
    if not is_observed(value) or value._owner is not owner or owner is None:
        return
    if not owner._paths.release(value, path):
        return
    current = owner._paths.path_of(value)
    if current is not None:
        # descendants must be recorded under the surviving slot
        memo = {id(value): value}
        for child_key, child in value._children():
            wrap(child, join(current, child_key), owner, memo)
    for child_key, child in value._children():
        unwrap(child, join(path, child_key), owner)
    if current is None:
        value._owner = None
        logger.debug(f"Released {type(value).__name__} at {path!r}")


def to_plain(value: Any, memo: Optional[Dict[int, Any]] = None) -> Any:
    """Recursively copy observed containers into plain dicts/lists.

    Cycles are reproduced as cycles in the copy. Other values are returned
    by reference.
    """
    if not is_observable(value):
        return value
    if memo is None:
        memo = {}
    key = id(value)
    if key in memo:
        return memo[key]
    if isinstance(value, dict):
        result: Any = {}
        memo[key] = result
        for child_key, child in dict.items(value):
            result[child_key] = to_plain(child, memo)
    else:
        result = []
        memo[key] = result
        result.extend(to_plain(child, memo) for child in list.__iter__(value))
    return result


class _ObservedMixin:
    """Owner binding shared by the observed container types."""
    __slots__ = ()

    @property
    def owner(self) -> Any:
        return self._owner

    @property
    def path(self) -> Optional[str]:
        """Current path inside the owner, or None when detached."""
        owner = self._owner
        if owner is None:
            return None
        return owner._paths.path_of(self)

    def _bind(self, owner: Any, path: str) -> None:
        previous = self._owner
        if previous is not None and previous is not owner:
            previous._paths.release(self)
        self._owner = owner
        if owner is not None:
            owner._paths.assign(self, path)

    def _notify(self, path: str, previous: Any) -> None:
        self._owner._notify_change(path, previous)


class ObservedDict(_ObservedMixin, dict):
    """A dict that reports writes and deletions to its owning model."""
    __slots__ = ('_owner',)

    def __init__(self, *args, **kwargs):
        dict.__init__(self, *args, **kwargs)
        self._owner = None

    def _children(self) -> List[Tuple[Any, Any]]:
        return list(dict.items(self))

    def _raw_set(self, key: Any, value: Any) -> None:
        dict.__setitem__(self, key, value)

    def __setitem__(self, key: Any, value: Any) -> None:
        path = self.path
        if path is None:
            dict.__setitem__(self, key, value)
            return
        existed = dict.__contains__(self, key)
        previous = dict.get(self, key)
        if existed and same_value(previous, value):
            return
        slot = join(path, key)
        owner = self._owner
        # release the old slot first, the new value may hold the old one
        if existed:
            unwrap(previous, slot, owner)
        dict.__setitem__(self, key, wrap(value, slot, owner))
        self._notify(slot, previous)

    def __delitem__(self, key: Any) -> None:
        previous = dict.__getitem__(self, key)
        dict.__delitem__(self, key)
        path = self.path
        if path is None:
            return
        slot = join(path, key)
        unwrap(previous, slot, self._owner)
        self._notify(slot, previous)

    def update(self, *args, **kwargs) -> None:
        for key, value in dict(*args, **kwargs).items():
            self[key] = value

    def setdefault(self, key: Any, default: Any = None) -> Any:
        if not dict.__contains__(self, key):
            self[key] = default
        return dict.__getitem__(self, key)

    def pop(self, key: Any, *default: Any) -> Any:
        if dict.__contains__(self, key):
            value = dict.__getitem__(self, key)
            del self[key]
            return value
        if default:
            return default[0]
        raise KeyError(key)

    def popitem(self) -> Tuple[Any, Any]:
        if not self:
            raise KeyError('popitem(): dictionary is empty')
        key = next(reversed(dict.keys(self)))
        return key, self.pop(key)

    def clear(self) -> None:
        for key in list(dict.keys(self)):
            del self[key]

    def __ior__(self, other):
        self.update(other)
        return self

    # copies are plain and never carry the owner along
    def __copy__(self) -> dict:
        return dict(self)

    def __deepcopy__(self, memo: Dict[int, Any]) -> dict:
        result: dict = {}
        memo[id(self)] = result
        for key, value in dict.items(self):
            result[copy.deepcopy(key, memo)] = copy.deepcopy(value, memo)
        return result


class ObservedList(_ObservedMixin, list):
    """A list that reports every changed slot to its owning model.

    Structural operations (insert, pop, sort, ...) are applied first and then
    diffed slot by slot against the previous contents: each index whose value
    changed yields one change event, new indexes report ``previous=None`` and
    dropped indexes report the value they held.
    """
    __slots__ = ('_owner',)

    def __init__(self, *args):
        list.__init__(self, *args)
        self._owner = None

    def _children(self) -> List[Tuple[int, Any]]:
        return list(enumerate(list.__iter__(self)))

    def _raw_set(self, index: int, value: Any) -> None:
        list.__setitem__(self, index, value)

    def _mutate(self, operation):
        path = self.path
        if path is None:
            return operation()
        before = list(list.__iter__(self))
        result = operation()
        self._reconcile(path, before)
        return result

    def _reconcile(self, path: str, before: List[Any]) -> None:
        owner = self._owner
        length = list.__len__(self)

        # vacated slots go first, moved items are re-bound below
        for index, item in enumerate(before):
            if index < length and list.__getitem__(self, index) is item:
                continue
            unwrap(item, join(path, index), owner)

        memo: Dict[int, Any] = {}
        for index in range(length):
            item = list.__getitem__(self, index)
            if index < len(before) and before[index] is item and (not is_observed(item) or item._owner is owner):
                continue
            wrapped = wrap(item, join(path, index), owner, memo)
            if wrapped is not item:
                list.__setitem__(self, index, wrapped)

        changes = []
        for index in range(max(len(before), length)):
            if index >= length:
                previous = before[index]
            elif index >= len(before):
                previous = None
            elif same_value(before[index], list.__getitem__(self, index)):
                continue
            else:
                previous = before[index]
            changes.append((join(path, index), previous))

        for slot, previous in changes:
            self._notify(slot, previous)

    def __setitem__(self, index, value) -> None:
        if isinstance(index, slice):
            value = list(value)
        self._mutate(lambda: list.__setitem__(self, index, value))

    def __delitem__(self, index) -> None:
        self._mutate(lambda: list.__delitem__(self, index))

    def append(self, value: Any) -> None:
        self._mutate(lambda: list.append(self, value))

    def extend(self, values: Iterable[Any]) -> None:
        items = list(values)
        self._mutate(lambda: list.extend(self, items))

    def insert(self, index: int, value: Any) -> None:
        self._mutate(lambda: list.insert(self, index, value))

    def pop(self, index: int = -1) -> Any:
        return self._mutate(lambda: list.pop(self, index))

    def remove(self, value: Any) -> None:
        self._mutate(lambda: list.remove(self, value))

    def clear(self) -> None:
        self._mutate(lambda: list.clear(self))

    def sort(self, *, key=None, reverse: bool = False) -> None:
        self._mutate(lambda: list.sort(self, key=key, reverse=reverse))

    def reverse(self) -> None:
        self._mutate(lambda: list.reverse(self))

    def __iadd__(self, other):
        self.extend(other)
        return self

    def __imul__(self, count: int):
        self._mutate(lambda: list.__imul__(self, count))
        return self

    def __copy__(self) -> list:
        return list(self)

    def __deepcopy__(self, memo: Dict[int, Any]) -> list:
        result: list = []
        memo[id(self)] = result
        result.extend(copy.deepcopy(item, memo) for item in list.__iter__(self))
        return result


_OBSERVED_TYPES = (ObservedDict, ObservedList)
_OBSERVABLE_TYPES = (dict, list) + _OBSERVED_TYPES
