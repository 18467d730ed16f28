from ugc_reviews.decorators import ApiRequest
from pydantic import Field, field_validator


class RedeemCouponRequest(ApiRequest):
    code: str = Field(..., min_length=1, max_length=64)

    @field_validator("code", mode="before")
    @classmethod
    def normalize_code(cls, v):
        return v.strip().upper() if isinstance(v, str) else v
