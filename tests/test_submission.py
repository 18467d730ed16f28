import base64
from datetime import timedelta

import pytest

from ugc_reviews.errors import ErrorKind
from ugc_reviews.reviews import ReviewStatus, ReviewStore
from ugc_reviews.submission import SubmissionValidator, decode_image, parse_rating
from ugc_reviews.tokens import TokenSigner

from conftest import PNG_BYTES, PNG_DATA_URL, TOKEN_SECRET, FakeUploader


@pytest.fixture
def signer(clock):
    return TokenSigner(TOKEN_SECRET, timedelta(days=14), clock=clock)


@pytest.fixture
def reviews(store):
    return ReviewStore(store)


@pytest.fixture
def validator(signer, reviews, uploader, clock):
    return SubmissionValidator(signer, reviews, uploader, max_image_bytes=1024, clock=clock)


@pytest.fixture
def token(signer):
    return signer.issue("ORD-1001", "4321", service="Deep cleaning", area="Taipei")


def _submit(validator, token, **overrides):
    fields = {
        "token": token,
        "name": "Amy",
        "area": "Taipei",
        "service": "Deep cleaning",
        "rating": 5,
        "comment": "Spotless kitchen",
        "images": [PNG_DATA_URL],
        "email": "amy@example.com",
    }
    fields.update(overrides)
    return validator.submit(**fields)


def test_valid_submission_is_stored_pending(validator, token, reviews, uploader, clock):
    result = _submit(validator, token)

    assert result.ok
    review, version = reviews.get(result.value)
    assert version == 1
    assert review.status == ReviewStatus.PENDING
    assert review.created_at == clock()
    assert review.rating == 5
    assert review.image_urls == ["https://img.example.com/ugc/1.jpg"]
    assert review.order_id == "ORD-1001"
    assert review.phone_last4 == "4321"
    assert review.email == "amy@example.com"
    assert uploader.calls == [("review-1", PNG_BYTES)]


def test_service_and_area_fall_back_to_token(validator, token, reviews):
    result = _submit(validator, token, service="", area=None)

    review, _ = reviews.get(result.value)
    assert (review.service, review.area) == ("Deep cleaning", "Taipei")


def test_expired_token_is_rejected(validator, token, clock, store):
    clock.advance(days=15)

    result = _submit(validator, token)

    assert result.error == ErrorKind.INVALID_TOKEN
    assert store.scan("review#") == []


def test_first_failing_check_wins(validator, store, uploader):
    result = _submit(validator, "bogus", name="", rating=9, images=[])

    assert result.error == ErrorKind.INVALID_TOKEN
    assert uploader.calls == []
    assert store.scan("review#") == []


def test_missing_name_reported_before_rating(validator, token):
    assert _submit(validator, token, name="  ", rating=9).error == ErrorKind.MISSING_FIELDS


def test_missing_service_without_token_fallback(validator, signer):
    bare_token = signer.issue("ORD-2", "1111")

    assert _submit(validator, bare_token, service=None).error == ErrorKind.MISSING_FIELDS


@pytest.mark.parametrize("rating", [0, 6, "6", "five", 4.5, True, None])
def test_out_of_range_rating_is_rejected(validator, token, store, uploader, rating):
    result = _submit(validator, token, rating=rating)

    assert result.error == ErrorKind.INVALID_RATING
    assert uploader.calls == []
    assert store.scan("review#") == []


def test_rating_given_as_digit_string_is_accepted(validator, token, reviews):
    result = _submit(validator, token, rating=" 3 ")

    review, _ = reviews.get(result.value)
    assert review.rating == 3


@pytest.mark.parametrize("images", [[], [PNG_DATA_URL] * 4, "not-a-list"])
def test_image_count_out_of_bounds(validator, token, store, uploader, images):
    result = _submit(validator, token, images=images)

    assert result.error == ErrorKind.INVALID_IMAGE
    assert uploader.calls == []
    assert store.scan("review#") == []


def test_undecodable_image_is_rejected(validator, token, uploader):
    result = _submit(validator, token, images=[PNG_DATA_URL, "data:text/plain;base64,aGk="])

    assert result.error == ErrorKind.INVALID_IMAGE
    assert uploader.calls == []


def test_oversized_image_is_rejected_before_upload(validator, token, uploader, store):
    big = base64.b64encode(b"x" * 1025).decode()

    result = _submit(validator, token, images=[big])

    assert result.error == ErrorKind.IMAGE_TOO_LARGE
    assert uploader.calls == []
    assert store.scan("review#") == []


def test_upload_failure_persists_nothing(signer, reviews, store, token, clock):
    validator = SubmissionValidator(signer, reviews, FakeUploader(fail=True), clock=clock)

    result = _submit(validator, token)

    assert result.error == ErrorKind.UPSTREAM_UNAVAILABLE
    assert store.scan("review#") == []


def test_parse_rating():
    assert parse_rating(1) == 1
    assert parse_rating("5") == 5
    assert parse_rating("-1") is None
    assert parse_rating(False) is None


def test_decode_image_accepts_data_url_and_bare_base64():
    assert decode_image(PNG_DATA_URL) == PNG_BYTES
    assert decode_image(base64.b64encode(PNG_BYTES).decode()) == PNG_BYTES
    assert decode_image("data:image/png;base64,***") is None
    assert decode_image("") is None
    assert decode_image(42) is None
