from ugc_reviews.decorators import ApiRequest
from pydantic import Field
from typing import Optional


class ModerateReviewRequest(ApiRequest):
    id: str = Field(..., min_length=1)
    action: str = Field(..., description="approve | reject | remove | reply | resend_coupon")
    owner_reply: Optional[str] = Field(default=None, max_length=2000)
