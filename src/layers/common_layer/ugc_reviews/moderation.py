"""
Admin moderation of submitted reviews.

pending -> approved | rejected | removed; ``reply`` and ``resend_coupon`` apply
in any state.
Approval issues exactly one coupon per review: the coupon record and the
review update are written in one conditional transaction, and a review that
already carries a coupon is only re-confirmed.
"""

from datetime import datetime
from enum import Enum
from typing import Callable, Optional, Protocol

from loguru import logger

from ugc_reviews.brevo_client import build_coupon_email
from ugc_reviews.coupons import CouponLedger
from ugc_reviews.errors import ErrorKind, UpstreamUnavailableError
from ugc_reviews.results import Result
from ugc_reviews.reviews import Review, ReviewStatus, ReviewStore, review_key
from ugc_reviews.store import ConditionFailed, conflict_retrying
from ugc_reviews.tokens import Clock, utc_now


class ModerationAction(str, Enum):
    APPROVE = "approve"
    REJECT = "reject"
    REMOVE = "remove"
    REPLY = "reply"
    RESEND_COUPON = "resend_coupon"


class Mailer(Protocol):
    def send(self, to_email: str, subject: str, html_body: str, to_name: str = "") -> dict: ...


class ModerationService:
    def __init__(
        self,
        reviews: ReviewStore,
        coupons: CouponLedger,
        mailer: Mailer,
        brand_name: str = "",
        coupon_max_attempts: int = 20,
        write_max_attempts: int = 5,
        resend_on_reapprove: bool = False,
        line_url: Optional[str] = None,
        site_url: Optional[str] = None,
        clock: Clock = utc_now,
    ):
        self.reviews = reviews
        self.coupons = coupons
        self.mailer = mailer
        self.brand_name = brand_name
        self.coupon_max_attempts = coupon_max_attempts
        self.write_max_attempts = write_max_attempts
        self.resend_on_reapprove = resend_on_reapprove
        self.line_url = line_url
        self.site_url = site_url
        self._clock = clock

    def moderate(self, review_id: str, action: str, owner_reply: Optional[str] = None) -> Result:
        try:
            action = ModerationAction(action)
        except ValueError:
            return Result.failure(ErrorKind.UNKNOWN_ACTION, f"Unknown action: {action}")

        if action == ModerationAction.APPROVE:
            return self.approve(review_id)
        if action == ModerationAction.REJECT:
            return self.reject(review_id)
        if action == ModerationAction.REMOVE:
            return self.remove(review_id)
        if action == ModerationAction.REPLY:
            return self.reply(review_id, owner_reply)
        return self.resend_coupon(review_id)

    def approve(self, review_id: str) -> Result:
        outcome = self._with_conflict_retry(lambda: self._approve_once(review_id))
        if not outcome.ok:
            return outcome

        review, notify = outcome.value
        if notify and review.email:
            review = self._notify(review)
        return Result.success(review)

    def reject(self, review_id: str) -> Result:
        def mutate(review: Review):
            review.status = ReviewStatus.REJECTED
            review.reviewed_at = self._clock()

        return self._update(review_id, mutate, "rejected")

    def remove(self, review_id: str) -> Result:
        def mutate(review: Review):
            review.status = ReviewStatus.REMOVED

        return self._update(review_id, mutate, "removed")

    def reply(self, review_id: str, owner_reply: Optional[str]) -> Result:
        text = (owner_reply or "").strip()
        if not text:
            return Result.failure(ErrorKind.MISSING_FIELDS, "owner_reply is required")

        def mutate(review: Review):
            review.owner_reply = text
            review.replied_at = self._clock()

        return self._update(review_id, mutate, "replied")

    def resend_coupon(self, review_id: str) -> Result:
        """Emails the coupon already attached to a review, e.g. after a failed send."""
        found = self.reviews.get(review_id)
        if found is None:
            return Result.failure(ErrorKind.NOT_FOUND, "Review not found")
        review, _ = found
        if not review.coupon_code:
            return Result.failure(ErrorKind.NOT_FOUND, "Review has no coupon")
        if not review.email:
            return Result.failure(ErrorKind.MISSING_FIELDS, "Review has no email address")

        review = self._notify(review)
        if review.coupon_send_error:
            return Result.failure(ErrorKind.UPSTREAM_UNAVAILABLE, review.coupon_send_error)
        return Result.success(review)

    def _approve_once(self, review_id: str) -> Result:
        found = self.reviews.get(review_id)
        if found is None:
            return Result.failure(ErrorKind.NOT_FOUND, "Review not found")
        review, version = found

        if review.coupon_code:
            if review.status != ReviewStatus.APPROVED:
                review.status = ReviewStatus.APPROVED
                review.reviewed_at = self._clock()
                self.reviews.save(review, version)
            logger.info("Review {} re-approved with coupon {}", review.id, review.coupon_code)
            return Result.success((review, self.resend_on_reapprove))

        review.status = ReviewStatus.APPROVED
        review.reviewed_at = self._clock()

        for _ in range(self.coupon_max_attempts):
            code = self.coupons.generate_code()
            review.coupon_code = code
            ops = [
                self.coupons.build_issue_op(code, review.id, review.order_id),
                self.reviews.save_op(review, version),
            ]
            try:
                self.reviews.store.transact(ops)
            except ConditionFailed as e:
                if review_key(review.id) in e.keys:
                    raise
                logger.warning("Coupon code {} already issued, drawing another", code)
                continue

            logger.info("Review {} approved, coupon {} issued", review.id, code)
            return Result.success((review, True))

        logger.error("No free coupon code after {} attempts", self.coupon_max_attempts)
        return Result.failure(ErrorKind.SERVER_ERROR, "Could not allocate a coupon code")

    def _send_coupon_email(self, review: Review, expires_on: datetime) -> Optional[str]:
        """Returns the failure message, or None once the email is accepted."""
        subject, body = build_coupon_email(
            code=review.coupon_code,
            brand=self.brand_name,
            expires_on=expires_on,
            submitter_name=review.submitter_name,
            line_url=self.line_url,
            site_url=self.site_url,
        )
        try:
            self.mailer.send(review.email, subject, body, to_name=review.submitter_name)
        except UpstreamUnavailableError as e:
            logger.warning(f"Coupon email for review {review.id} failed: {e.message}")
            return e.message
        except Exception:
            logger.exception(f"Coupon email for review {review.id} failed")
            return "Email send failed"
        return None

    def _notify(self, review: Review) -> Review:
        coupon = self.coupons.get(review.coupon_code)
        if coupon is None:
            logger.error(f"Coupon {review.coupon_code} of review {review.id} is missing")
            send_error = "Coupon record missing"
        else:
            send_error = self._send_coupon_email(review, self.coupons.expiry(coupon))

        sent_at = None if send_error else self._clock()

        def mutate(current: Review):
            current.coupon_send_error = send_error
            if sent_at:
                current.coupon_sent_at = sent_at

        recorded = self._update(review.id, mutate, "email outcome recorded")
        if not recorded.ok:
            logger.error(f"Could not record email outcome for review {review.id}")
            review.coupon_send_error = send_error
            return review
        return recorded.value

    def _update(self, review_id: str, mutate: Callable[[Review], None], label: str) -> Result:
        def once() -> Result:
            found = self.reviews.get(review_id)
            if found is None:
                return Result.failure(ErrorKind.NOT_FOUND, "Review not found")
            review, version = found
            mutate(review)
            self.reviews.save(review, version)
            logger.info("Review {} {}", review_id, label)
            return Result.success(review)

        return self._with_conflict_retry(once)

    def _with_conflict_retry(self, fn: Callable[[], Result]) -> Result:
        try:
            for attempt in conflict_retrying(self.write_max_attempts):
                with attempt:
                    return fn()
        except ConditionFailed:
            logger.error("Gave up after {} conflicting writes", self.write_max_attempts)
            return Result.failure(ErrorKind.CONFLICT, "Review is being modified")
