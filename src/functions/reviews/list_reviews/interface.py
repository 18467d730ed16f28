from ugc_reviews.decorators import ApiRequest
from ugc_reviews.reviews import ReviewStatus
from pydantic import Field


class ListReviewsRequest(ApiRequest):
    status: ReviewStatus = Field(default=ReviewStatus.APPROVED)
    page: int = Field(default=1, ge=1)
    page_size: int = Field(default=20, ge=1, le=100)
