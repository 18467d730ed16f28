from datetime import datetime
from enum import Enum
from typing import List, Optional, Tuple

from pydantic import BaseModel, Field

from ugc_reviews.store import MUST_NOT_EXIST, BlobStore, VersionedItem, WriteOp

REVIEW_PREFIX = "review#"

# Fields only admins may see.
INTERNAL_FIELDS = {
    "order_id",
    "phone_last4",
    "email",
    "coupon_code",
    "coupon_send_error",
    "coupon_sent_at",
    "reviewed_at",
}


class ReviewStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    REMOVED = "removed"


class Review(BaseModel):
    id: str
    status: ReviewStatus = ReviewStatus.PENDING
    created_at: datetime
    reviewed_at: Optional[datetime] = None
    submitter_name: str
    area: str
    service: str
    rating: int = Field(ge=1, le=5)
    comment: str = ""
    image_urls: List[str] = Field(default_factory=list)
    email: Optional[str] = None
    owner_reply: Optional[str] = None
    replied_at: Optional[datetime] = None
    coupon_code: Optional[str] = None
    coupon_send_error: Optional[str] = None
    coupon_sent_at: Optional[datetime] = None
    order_id: Optional[str] = None
    phone_last4: Optional[str] = None

    def public_view(self) -> dict:
        return self.model_dump(mode="json", exclude=INTERNAL_FIELDS)

    def admin_view(self) -> dict:
        return self.model_dump(mode="json")


def review_key(review_id: str) -> str:
    return f"{REVIEW_PREFIX}{review_id}"


class ReviewStore:
    """Review records on top of the versioned blob store."""

    def __init__(self, store: BlobStore):
        self.store = store

    def get(self, review_id: str) -> Optional[Tuple[Review, int]]:
        item = self.store.get(review_key(review_id))
        if item is None:
            return None
        return Review.model_validate(item.value), item.version

    def create(self, review: Review) -> Review:
        self.store.put(review_key(review.id), review.admin_view(), MUST_NOT_EXIST)
        return review

    def save_op(self, review: Review, expected_version: int) -> WriteOp:
        return WriteOp(review_key(review.id), review.admin_view(), expected_version)

    def save(self, review: Review, expected_version: int) -> VersionedItem:
        return self.store.transact([self.save_op(review, expected_version)])[0]

    def list(self, status: Optional[ReviewStatus] = None) -> List[Review]:
        reviews = [Review.model_validate(item.value) for item in self.store.scan(REVIEW_PREFIX)]
        if status is not None:
            reviews = [r for r in reviews if r.status == status]
        return sorted(reviews, key=lambda r: r.created_at, reverse=True)
