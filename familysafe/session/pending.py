"""
Optimistic local list reconciled with server rows.

Items are shown the moment the caller submits them, under a temporary id.
When the insert resolves the temporary entry is swapped for the server row;
when it fails the entry is removed and the error propagates. Realtime
deliveries are applied by primary key, so a server row is present at most
once no matter whether the insert result or its realtime echo lands first.
"""
import logging
import uuid
from operator import attrgetter
from typing import Awaitable, Callable, Generic, Iterable, Iterator, List, Optional, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")

TEMP_PREFIX = "temp-"


def new_temp_id() -> str:
    return f"{TEMP_PREFIX}{uuid.uuid4().hex}"


def is_temp_id(item_id: Optional[str]) -> bool:
    return bool(item_id) and item_id.startswith(TEMP_PREFIX)


class PendingList(Generic[T]):
    def __init__(self, key: Callable[[T], str] = attrgetter("id")):
        self._key = key
        self._items: List[T] = []

    def __len__(self) -> int:
        return len(self._items)

    def __iter__(self) -> Iterator[T]:
        return iter(list(self._items))

    def __contains__(self, item_id: str) -> bool:
        return self._index(item_id) is not None

    @property
    def items(self) -> List[T]:
        return list(self._items)

    @property
    def ids(self) -> List[str]:
        return [self._key(item) for item in self._items]

    @property
    def pending_ids(self) -> List[str]:
        return [item_id for item_id in self.ids if is_temp_id(item_id)]

    def get(self, item_id: str) -> Optional[T]:
        index = self._index(item_id)
        return self._items[index] if index is not None else None

    def _index(self, item_id: str) -> Optional[int]:
        for index, item in enumerate(self._items):
            if self._key(item) == item_id:
                return index
        return None

    def reset(self, items: Iterable[T]) -> None:
        """Replace the whole list with freshly loaded server rows"""
        self._items = []
        for item in items:
            self.apply_insert(item)

    async def submit(self, temp_id: str, item: T, commit: Callable[[], Awaitable[T]]) -> T:
        """Show ``item`` under ``temp_id`` until ``commit`` resolves, then reconcile"""
        self._items.append(item)
        try:
            canonical = await commit()
        except BaseException:
            self.remove(temp_id)
            raise

        canonical_id = self._key(canonical)
        index = self._index(temp_id)
        if canonical_id in self:
            # realtime echo already delivered the server row
            if index is not None:
                del self._items[index]
        elif index is not None:
            self._items[index] = canonical
        else:
            self._items.append(canonical)
        return canonical

    def apply_insert(self, item: T) -> bool:
        """Append a server row unless a row with its id is already present"""
        if self._key(item) in self:
            logger.debug(f"Ignoring duplicate row {self._key(item)}")
            return False
        self._items.append(item)
        return True

    def replace(self, item: T) -> bool:
        index = self._index(self._key(item))
        if index is None:
            return False
        self._items[index] = item
        return True

    def remove(self, item_id: str) -> bool:
        index = self._index(item_id)
        if index is None:
            return False
        del self._items[index]
        return True
