"""
Path bookkeeping for observed containers.

Each Model owns one PathTracker: an identity-keyed side table mapping every
observed dict/list reachable from the model to the slots it occupies, e.g.
``":person:pets:0"``. The root (the model itself) has the empty path.

A container shared by several slots keeps one entry per slot, ordered by
assignment. Its path is the newest live slot, so changes are reported under
the position it was assigned to last. Removing that slot falls back to the
next newest one; the container is forgotten once no slot remains.
"""
from typing import Any, Dict, List, Optional, Tuple

from modelstate.config import get_config


def join(path: str, key: Any) -> str:
    """Append one key to a path: join(":person", "name") -> ":person:name"."""
    return f"{path}{get_config().path_separator}{key}"


def split(path: str) -> Tuple[str, ...]:
    """Split a path into its keys: ":person:name" -> ("person", "name")."""
    separator = get_config().path_separator
    if not path:
        return ()
    return tuple(path.split(separator)[1:])


def is_under(path: str, prefix: str) -> bool:
    """True when ``path`` lies strictly below ``prefix``."""
    return path.startswith(f"{prefix}{get_config().path_separator}")


class PathTracker:
    """Identity-keyed table of container → slots.

    Entries hold a strong reference to the container next to its slots so a
    recycled ``id()`` can never alias a dead container.
    """

    def __init__(self) -> None:
        self._entries: Dict[int, Tuple[Any, List[str]]] = {}

    def assign(self, container: Any, path: str) -> None:
        """Record ``path`` as the newest slot of ``container``."""
        entry = self._entries.get(id(container))
        if entry is None or entry[0] is not container:
            self._entries[id(container)] = (container, [path])
            return
        slots = entry[1]
        if path in slots:
            slots.remove(path)
        slots.append(path)

    def slots_of(self, container: Any) -> Tuple[str, ...]:
        """Every slot of ``container``, oldest first."""
        entry = self._entries.get(id(container))
        if entry is None or entry[0] is not container:
            return ()
        return tuple(entry[1])

    def path_of(self, container: Any) -> Optional[str]:
        """Current path of ``container`` or None if untracked."""
        slots = self.slots_of(container)
        return slots[-1] if slots else None

    def release(self, container: Any, path: Optional[str] = None) -> bool:
        """Drop one slot of ``container``, or all of them.

        Slots recorded below ``path`` go with it: they were reached through
        the removed slot (a container holding itself, for instance).

        Args:
            container: The container losing a slot
            path: Slot to drop; None drops the whole entry

        Returns:
            True if a slot was removed
        """
        slots = self.slots_of(container)
        if not slots:
            return False
        if path is None:
            del self._entries[id(container)]
            return True
        if path not in slots:
            return False
        kept = [slot for slot in slots if slot != path and not is_under(slot, path)]
        if kept:
            self._entries[id(container)] = (container, kept)
        else:
            del self._entries[id(container)]
        return True

    def clear(self) -> None:
        self._entries.clear()

    def __contains__(self, container: Any) -> bool:
        return self.path_of(container) is not None

    def __len__(self) -> int:
        return len(self._entries)
