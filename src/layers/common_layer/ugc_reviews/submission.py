import base64
import binascii
import re
import uuid
from typing import Any, List, Optional, Protocol

from loguru import logger

from ugc_reviews.errors import ErrorKind, UpstreamUnavailableError
from ugc_reviews.results import Result
from ugc_reviews.reviews import Review, ReviewStatus, ReviewStore
from ugc_reviews.tokens import Clock, TokenSigner, utc_now

_DATA_URL = re.compile(
    r"^data:(?P<mime>[\w.+-]+/[\w.+-]+)?(?:;[^,;]*)*;base64,(?P<data>.*)$", re.DOTALL
)
_DIGITS = re.compile(r"[0-9]+")


class ImageUploader(Protocol):
    def upload(self, data: bytes, filename: str = "image") -> str: ...


def parse_rating(value: Any) -> Optional[int]:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        rating = value
    elif isinstance(value, str) and _DIGITS.fullmatch(value.strip()):
        rating = int(value.strip())
    else:
        return None
    return rating if 1 <= rating <= 5 else None


def decode_image(payload: Any) -> Optional[bytes]:
    """Decodes a ``data:image/*;base64,`` URL or bare base64 into bytes."""
    if not isinstance(payload, str) or not payload.strip():
        return None

    payload = payload.strip()
    if payload.startswith("data:"):
        match = _DATA_URL.match(payload)
        if not match or not (match.group("mime") or "").startswith("image/"):
            return None
        payload = match.group("data")

    try:
        raw = base64.b64decode("".join(payload.split()), validate=True)
    except (binascii.Error, ValueError):
        return None
    return raw or None


class SubmissionValidator:
    def __init__(
        self,
        tokens: TokenSigner,
        reviews: ReviewStore,
        uploader: ImageUploader,
        min_images: int = 1,
        max_images: int = 3,
        max_image_bytes: int = 5 * 1024 * 1024,
        clock: Clock = utc_now,
    ):
        self.tokens = tokens
        self.reviews = reviews
        self.uploader = uploader
        self.min_images = min_images
        self.max_images = max_images
        self.max_image_bytes = max_image_bytes
        self._clock = clock

    def submit(
        self,
        token: Optional[str],
        name: Optional[str],
        area: Optional[str],
        service: Optional[str],
        rating: Any,
        comment: Optional[str],
        images: Any,
        email: Optional[str] = None,
    ) -> Result:
        """
        Validates a public submission and stores it as a pending review.

        Checks run in a fixed order and the first failure wins. Nothing is
        uploaded or written unless every check passes. Returns the new
        review id on success.
        """
        payload = self.tokens.verify(token)
        if payload is None:
            return Result.failure(ErrorKind.INVALID_TOKEN, "Invalid or expired token")

        name = (name or "").strip()
        service = (service or "").strip() or payload.service.strip()
        area = (area or "").strip() or payload.area.strip()
        if not (name and service and area):
            return Result.failure(ErrorKind.MISSING_FIELDS, "name, service and area are required")

        parsed_rating = parse_rating(rating)
        if parsed_rating is None:
            return Result.failure(ErrorKind.INVALID_RATING, "rating must be an integer from 1 to 5")

        decoded = self._decode_images(images)
        if not decoded.ok:
            return decoded

        try:
            image_urls = [
                self.uploader.upload(data, filename=f"review-{index + 1}")
                for index, data in enumerate(decoded.value)
            ]
        except UpstreamUnavailableError as e:
            logger.error(f"Aborting submission for order {payload.order_id}: {e.message}")
            return Result.failure(ErrorKind.UPSTREAM_UNAVAILABLE, "Image upload failed")

        review = Review(
            id=uuid.uuid4().hex,
            status=ReviewStatus.PENDING,
            created_at=self._clock(),
            submitter_name=name,
            area=area,
            service=service,
            rating=parsed_rating,
            comment=(comment or "").strip(),
            image_urls=image_urls,
            email=(email or "").strip() or None,
            order_id=payload.order_id,
            phone_last4=payload.phone_last4,
        )
        self.reviews.create(review)
        logger.info("Review {} submitted for order {}", review.id, payload.order_id)
        return Result.success(review.id)

    def _decode_images(self, images: Any) -> Result:
        if images is None:
            images = []
        if not isinstance(images, list):
            return Result.failure(ErrorKind.INVALID_IMAGE, "images must be a list")
        if not self.min_images <= len(images) <= self.max_images:
            return Result.failure(
                ErrorKind.INVALID_IMAGE,
                f"between {self.min_images} and {self.max_images} images are required",
            )

        decoded: List[bytes] = []
        for image in images:
            data = decode_image(image)
            if data is None:
                return Result.failure(ErrorKind.INVALID_IMAGE, "image could not be decoded")
            if len(data) > self.max_image_bytes:
                return Result.failure(ErrorKind.IMAGE_TOO_LARGE, "image exceeds the size limit")
            decoded.append(data)
        return Result.success(decoded)
