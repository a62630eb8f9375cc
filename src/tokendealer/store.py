import threading
import time
from collections import OrderedDict
from collections.abc import Iterable
from typing import Union

from .types import DEFAULT_GROUP, DEFAULT_MAX_ENTRIES, UsageRecord


def usage_key(token: str, group: str = DEFAULT_GROUP) -> str:
    return f"{group}#{token}"


class UsageStore:
    """Size-bounded LRU mapping of usage keys to UsageRecord objects.

    Records are handed out by reference; dealers mutate them in place while
    holding ``lock``. An evicted record that is still referenced by an
    in-flight attempt simply stops being tracked.
    """

    def __init__(self, max_entries: Union[int, None] = DEFAULT_MAX_ENTRIES):
        if max_entries is not None and max_entries <= 0:
            raise ValueError("max_entries must be a positive integer or None")
        self.max_entries = max_entries
        self.lock = threading.RLock()
        self._entries: OrderedDict[str, UsageRecord] = OrderedDict()

    def get(self, key: str) -> Union[UsageRecord, None]:
        with self.lock:
            record = self._entries.get(key)
            if record is not None:
                self._entries.move_to_end(key)
            return record

    def set(self, key: str, record: UsageRecord) -> None:
        with self.lock:
            self._entries[key] = record
            self._entries.move_to_end(key)
            if self.max_entries is not None:
                while len(self._entries) > self.max_entries:
                    self._entries.popitem(last=False)

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: object) -> bool:
        return key in self._entries


def retrieve_usage(
    store: UsageStore, token: str, group: str = DEFAULT_GROUP, now: Union[float, None] = None
) -> UsageRecord:
    """Fetch the record for (group, token), creating a fresh one if missing or stale."""
    now = time.time() if now is None else now
    key = usage_key(token, group)
    with store.lock:
        record = store.get(key)
        if record is None or record.is_stale(now):
            record = UsageRecord()
            store.set(key, record)
        return record


def get_usage(
    tokens: Iterable[str],
    store: UsageStore,
    group: str = DEFAULT_GROUP,
    now: Union[float, None] = None,
) -> dict[str, UsageRecord]:
    now = time.time() if now is None else now
    with store.lock:
        return {token: retrieve_usage(store, token, group, now) for token in tokens}
