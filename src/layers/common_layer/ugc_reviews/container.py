import sys
from dataclasses import dataclass
from datetime import timedelta
from typing import Optional

from loguru import logger

from ugc_reviews.brevo_client import BrevoMailer
from ugc_reviews.cloudinary_client import CloudinaryUploader
from ugc_reviews.config import Settings, get_settings
from ugc_reviews.coupons import CouponLedger
from ugc_reviews.dynamo_client import DynamoBlobStore
from ugc_reviews.memory_store import InMemoryBlobStore
from ugc_reviews.moderation import Mailer, ModerationService
from ugc_reviews.reviews import ReviewStore
from ugc_reviews.store import BlobStore
from ugc_reviews.submission import ImageUploader, SubmissionValidator
from ugc_reviews.tokens import TokenSigner


@dataclass
class Container:
    settings: Settings
    store: BlobStore
    tokens: TokenSigner
    reviews: ReviewStore
    coupons: CouponLedger
    submissions: SubmissionValidator
    moderation: ModerationService


def build_store(settings: Settings) -> BlobStore:
    if settings.store_backend == "memory":
        return InMemoryBlobStore()

    return DynamoBlobStore(
        table_name=settings.table_name,
        namespace=settings.blob_ns,
        region_name=settings.aws_region,
        timeout=settings.store_timeout,
    )


def build_container(
    settings: Settings,
    store: Optional[BlobStore] = None,
    uploader: Optional[ImageUploader] = None,
    mailer: Optional[Mailer] = None,
) -> Container:
    store = store or build_store(settings)
    uploader = uploader or CloudinaryUploader(
        cloud_name=settings.cloudinary_cloud_name,
        api_key=settings.cloudinary_api_key,
        api_secret=settings.cloudinary_api_secret,
        folder=settings.upload_folder,
        max_width=settings.max_width,
        timeout=settings.http_timeout,
    )
    mailer = mailer or BrevoMailer(
        api_key=settings.brevo_key,
        sender_email=settings.brevo_sender_email,
        sender_name=settings.brevo_sender_name,
        timeout=settings.http_timeout,
    )

    tokens = TokenSigner(settings.token_secret, timedelta(hours=settings.token_ttl_hours))
    reviews = ReviewStore(store)
    coupons = CouponLedger(
        store,
        prefix=settings.coupon_prefix,
        valid_days=settings.coupon_valid_days,
        write_max_attempts=settings.write_max_attempts,
    )

    return Container(
        settings=settings,
        store=store,
        tokens=tokens,
        reviews=reviews,
        coupons=coupons,
        submissions=SubmissionValidator(
            tokens,
            reviews,
            uploader,
            min_images=settings.min_images,
            max_images=settings.max_images,
            max_image_bytes=settings.max_image_bytes,
        ),
        moderation=ModerationService(
            reviews,
            coupons,
            mailer,
            brand_name=settings.brand_name,
            coupon_max_attempts=settings.coupon_max_attempts,
            write_max_attempts=settings.write_max_attempts,
            resend_on_reapprove=settings.resend_coupon_on_reapprove,
            line_url=settings.contact_line_url,
            site_url=settings.contact_site_url,
        ),
    )


_container: Optional[Container] = None


def configure_logging(level: str):
    logger.remove()
    logger.add(sys.stderr, level=level.upper())


def get_container() -> Container:
    """Builds the process-wide container on first use (once per Lambda cold start)."""
    global _container
    if _container is None:
        settings = get_settings()
        configure_logging(settings.log_level)
        if not settings.mailer_configured:
            logger.warning("BREVO_KEY or BREVO_SENDER_EMAIL unset, coupon emails will fail")
        _container = build_container(settings)
    return _container


def set_container(container: Optional[Container]):
    global _container
    _container = container
