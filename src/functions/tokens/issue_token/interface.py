from ugc_reviews.decorators import ApiRequest
from pydantic import Field, field_validator
from typing import Optional


class IssueTokenRequest(ApiRequest):
    order_id: str = Field(..., min_length=1, description="Order the review belongs to")
    phone_last4: str = Field(..., pattern=r"^[0-9]{4}$")
    service: Optional[str] = Field(default="")
    area: Optional[str] = Field(default="")

    @field_validator("order_id", "phone_last4", mode="before")
    @classmethod
    def strip_value(cls, v):
        if isinstance(v, int):
            return str(v)
        if isinstance(v, str):
            return v.strip()
        return v
