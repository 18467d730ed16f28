from functools import lru_cache
from typing import Literal, Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Process-wide configuration loaded from the Lambda environment."""

    # Storage
    table_name: str = Field(default="UgcReviews")
    blob_ns: str = Field(default="ugc-reviews")
    store_backend: Literal["dynamodb", "memory"] = Field(default="dynamodb")
    aws_region: Optional[str] = Field(default=None)
    store_timeout: float = Field(default=5.0, gt=0)
    write_max_attempts: int = Field(default=5, ge=1)

    # Auth / tokens
    admin_key: str = Field(default="")
    token_secret: str = Field(default="")
    token_ttl_hours: int = Field(default=336, gt=0)
    review_form_url: Optional[str] = Field(default=None)

    # Coupons
    coupon_prefix: str = Field(default="NU")
    coupon_max_attempts: int = Field(default=20, ge=1)
    coupon_valid_days: int = Field(default=60, gt=0)
    resend_coupon_on_reapprove: bool = Field(default=False)

    # Submissions
    min_images: int = Field(default=1, ge=0)
    max_images: int = Field(default=3, ge=1)
    max_image_bytes: int = Field(default=5 * 1024 * 1024, gt=0)

    # Cloudinary
    cloudinary_cloud_name: str = Field(default="")
    cloudinary_api_key: str = Field(default="")
    cloudinary_api_secret: str = Field(default="")
    upload_folder: str = Field(default="ugc")
    max_width: int = Field(default=1600, gt=0)

    # Brevo
    brevo_key: str = Field(default="")
    brevo_sender_email: str = Field(default="")
    brevo_sender_name: str = Field(default="Natural Uncle Customer Care")
    brand_name: str = Field(default="Natural Uncle")
    contact_line_url: Optional[str] = Field(default=None)
    contact_site_url: Optional[str] = Field(default=None)

    # HTTP boundary
    http_timeout: float = Field(default=10.0, gt=0)
    cors_allow_origin: str = Field(default="*")
    log_level: str = Field(default="INFO")

    model_config = SettingsConfigDict(
        env_file=".env", case_sensitive=False, extra="ignore"
    )

    @field_validator("coupon_prefix")
    @classmethod
    def _normalize_prefix(cls, value: str) -> str:
        value = value.strip().upper()
        if not value:
            raise ValueError("COUPON_PREFIX must not be empty")
        return value

    @field_validator("max_images")
    @classmethod
    def _check_image_bounds(cls, value: int, info) -> int:
        minimum = info.data.get("min_images", 0)
        if value < minimum:
            raise ValueError("MAX_IMAGES must be >= MIN_IMAGES")
        return value

    @property
    def mailer_configured(self) -> bool:
        return bool(self.brevo_key and self.brevo_sender_email)


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return cached application settings."""

    return Settings()
