from ugc_reviews.decorators import ApiRequest
from pydantic import Field
from typing import Any, Optional


class SubmitReviewRequest(ApiRequest):
    """
    Public review submission. Fields stay loosely typed here so the
    submission validator can apply its checks in order (token first).
    """

    token: Optional[str] = None
    name: Optional[str] = None
    area: Optional[str] = None
    service: Optional[str] = None
    rating: Any = None
    comment: Optional[str] = Field(default="", max_length=5000)
    images: Any = None
    email: Optional[str] = Field(default=None, max_length=254)
