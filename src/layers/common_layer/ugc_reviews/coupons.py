import secrets
from datetime import datetime, timedelta
from typing import Optional

from loguru import logger
from pydantic import BaseModel

from ugc_reviews.errors import ErrorKind
from ugc_reviews.results import Result
from ugc_reviews.store import (
    MUST_NOT_EXIST,
    BlobStore,
    ConditionFailed,
    WriteOp,
    conflict_retrying,
)
from ugc_reviews.tokens import Clock, utc_now

COUPON_PREFIX = "coupon#"


class Coupon(BaseModel):
    code: str
    created_at: datetime
    review_id: str
    order_id: Optional[str] = None
    expires_at: Optional[datetime] = None
    used_at: Optional[datetime] = None


class CouponStatus(BaseModel):
    exists: bool
    used: bool = False
    used_at: Optional[datetime] = None
    expires_at: Optional[datetime] = None


def coupon_key(code: str) -> str:
    return f"{COUPON_PREFIX}{code}"


class CouponLedger:
    """Issued coupon codes and their one-time redemption."""

    def __init__(
        self,
        store: BlobStore,
        prefix: str = "NU",
        valid_days: int = 60,
        write_max_attempts: int = 5,
        clock: Clock = utc_now,
    ):
        self.store = store
        self.prefix = prefix
        self.valid_days = valid_days
        self.write_max_attempts = write_max_attempts
        self._clock = clock

    def generate_code(self) -> str:
        now = self._clock()
        return f"{self.prefix}-{now:%y%m}-{secrets.randbelow(10000):04d}"

    def build_issue_op(
        self, code: str, review_id: str, order_id: Optional[str] = None
    ) -> WriteOp:
        now = self._clock()
        coupon = Coupon(
            code=code,
            created_at=now,
            review_id=review_id,
            order_id=order_id,
            expires_at=now + timedelta(days=self.valid_days),
        )
        return WriteOp(coupon_key(code), coupon.model_dump(mode="json"), MUST_NOT_EXIST)

    def issue(self, code: str, review_id: str, order_id: Optional[str] = None) -> Result:
        try:
            self.store.transact([self.build_issue_op(code, review_id, order_id)])
        except ConditionFailed:
            return Result.failure(ErrorKind.DUPLICATE_CODE, f"Coupon {code} already issued")
        return Result.success(code)

    def get(self, code: str) -> Optional[Coupon]:
        item = self.store.get(coupon_key(code))
        return Coupon.model_validate(item.value) if item else None

    def redeem(self, code: str) -> Result:
        try:
            for attempt in conflict_retrying(self.write_max_attempts):
                with attempt:
                    return self._redeem_once(code)
        except ConditionFailed:
            logger.error("Gave up redeeming coupon {} after repeated conflicts", code)
            return Result.failure(ErrorKind.CONFLICT, "Coupon is being modified")

    def _redeem_once(self, code: str) -> Result:
        item = self.store.get(coupon_key(code))
        if item is None:
            return Result.failure(ErrorKind.NOT_FOUND, "Coupon not found")

        coupon = Coupon.model_validate(item.value)
        if coupon.used_at is not None:
            return Result.failure(ErrorKind.ALREADY_USED, "Coupon already used")

        coupon.used_at = self._clock()
        self.store.put(item.key, coupon.model_dump(mode="json"), item.version)
        logger.info("Coupon {} redeemed", code)
        return Result.success(coupon)

    def expiry(self, coupon: Coupon) -> datetime:
        """Stored expiry, or the one implied by ``created_at`` for older records."""
        return coupon.expires_at or coupon.created_at + timedelta(days=self.valid_days)

    def status(self, code: str) -> CouponStatus:
        coupon = self.get(code)
        if coupon is None:
            return CouponStatus(exists=False)
        return CouponStatus(
            exists=True,
            used=coupon.used_at is not None,
            used_at=coupon.used_at,
            expires_at=self.expiry(coupon),
        )
