"""
Versioned key-value storage shared by reviews and coupons.

Every record carries an integer version owned by the store. Writes are
conditional on the version the caller read (``0`` means "must not exist"),
so read-modify-write cycles never silently overwrite a concurrent change.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional

from loguru import logger
from tenacity import (
    Retrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_random_exponential,
)

MUST_NOT_EXIST = 0


@dataclass(frozen=True)
class VersionedItem:
    key: str
    value: Dict[str, Any]
    version: int


@dataclass(frozen=True)
class WriteOp:
    key: str
    value: Dict[str, Any] = field(default_factory=dict)
    expected_version: int = MUST_NOT_EXIST


class ConditionFailed(Exception):
    """One or more conditional writes lost against a concurrent writer."""

    def __init__(self, keys: Iterable[str]):
        self.keys = tuple(keys)
        super().__init__(f"Condition failed for: {', '.join(self.keys)}")


class BlobStore(ABC):
    @abstractmethod
    def get(self, key: str) -> Optional[VersionedItem]: ...

    @abstractmethod
    def scan(self, prefix: str) -> List[VersionedItem]: ...

    @abstractmethod
    def transact(self, ops: List[WriteOp]) -> List[VersionedItem]:
        """Apply all writes atomically or none, raising ConditionFailed."""

    def put(
        self, key: str, value: Dict[str, Any], expected_version: int = MUST_NOT_EXIST
    ) -> VersionedItem:
        return self.transact([WriteOp(key, value, expected_version)])[0]


def conflict_retrying(max_attempts: int) -> Retrying:
    """Retry loop for a full read-mutate-write cycle on version conflicts."""

    return Retrying(
        stop=stop_after_attempt(max_attempts),
        wait=wait_random_exponential(multiplier=0.02, max=0.2),
        retry=retry_if_exception_type(ConditionFailed),
        before_sleep=lambda state: logger.warning(
            "Write conflict, retrying (attempt {})", state.attempt_number
        ),
        reraise=True,
    )
