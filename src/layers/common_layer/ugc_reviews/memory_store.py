import copy
import threading
from typing import Dict, List, Optional, Tuple

from ugc_reviews.store import (
    MUST_NOT_EXIST,
    BlobStore,
    ConditionFailed,
    VersionedItem,
    WriteOp,
)


class InMemoryBlobStore(BlobStore):
    """Process-local store used for local runs and tests."""

    def __init__(self):
        self._items: Dict[str, Tuple[dict, int]] = {}
        self._lock = threading.Lock()

    def get(self, key: str) -> Optional[VersionedItem]:
        with self._lock:
            found = self._items.get(key)
            if found is None:
                return None
            value, version = found
            return VersionedItem(key, copy.deepcopy(value), version)

    def scan(self, prefix: str) -> List[VersionedItem]:
        with self._lock:
            return [
                VersionedItem(key, copy.deepcopy(value), version)
                for key, (value, version) in sorted(self._items.items())
                if key.startswith(prefix)
            ]

    def transact(self, ops: List[WriteOp]) -> List[VersionedItem]:
        with self._lock:
            failed = [op.key for op in ops if self._current_version(op.key) != op.expected_version]
            if failed:
                raise ConditionFailed(failed)

            written = []
            for op in ops:
                version = op.expected_version + 1
                self._items[op.key] = (copy.deepcopy(op.value), version)
                written.append(VersionedItem(op.key, copy.deepcopy(op.value), version))
            return written

    def _current_version(self, key: str) -> int:
        found = self._items.get(key)
        return found[1] if found else MUST_NOT_EXIST
