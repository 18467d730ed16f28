"""
Signed submission tokens.

A token is ``<payload>.<signature>``: the payload is compact JSON encoded as
unpadded base64url, the signature is HMAC-SHA256 of the encoded payload with
the shared secret, also unpadded base64url. Verification needs no storage.
"""

import base64
import binascii
import hashlib
import hmac
import json
import re
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional

from loguru import logger
from pydantic import BaseModel, ConfigDict, Field, ValidationError, model_validator

Clock = Callable[[], datetime]

_PHONE_LAST4 = re.compile(r"^\d{4}$")


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _b64url_encode(raw: bytes) -> str:
    return base64.urlsafe_b64encode(raw).rstrip(b"=").decode("ascii")


def _b64url_decode(text: str) -> bytes:
    padded = text + "=" * (-len(text) % 4)
    return base64.urlsafe_b64decode(padded.encode("ascii"))


def _to_millis(moment: datetime) -> int:
    return int(moment.timestamp() * 1000)


class TokenPayload(BaseModel):
    model_config = ConfigDict(populate_by_name=True, frozen=True)

    order_id: str = Field(min_length=1)
    phone_last4: str = Field(pattern=r"^\d{4}$")
    service: str = ""
    area: str = ""
    issued_at: int = Field(alias="iat", description="Epoch milliseconds")
    expires_at: int = Field(alias="exp", description="Epoch milliseconds")

    @model_validator(mode="after")
    def _check_window(self):
        if self.expires_at <= self.issued_at:
            raise ValueError("expires_at must be after issued_at")
        return self

    def serialize(self) -> bytes:
        data = self.model_dump(by_alias=True)
        return json.dumps(data, separators=(",", ":"), ensure_ascii=False).encode("utf-8")


class TokenSigner:
    def __init__(self, secret: str, default_ttl: timedelta, clock: Clock = utc_now):
        if not secret:
            raise ValueError("Token secret must not be empty")
        self._secret = secret.encode("utf-8")
        self.default_ttl = default_ttl
        self._clock = clock

    def _sign(self, encoded_payload: str) -> str:
        digest = hmac.new(
            self._secret, encoded_payload.encode("ascii"), hashlib.sha256
        ).digest()
        return _b64url_encode(digest)

    def issue(
        self,
        order_id: str,
        phone_last4: str,
        service: str = "",
        area: str = "",
        ttl: Optional[timedelta] = None,
    ) -> str:
        ttl = self.default_ttl if ttl is None else ttl
        if ttl <= timedelta(0):
            raise ValueError("ttl must be positive")
        if not order_id:
            raise ValueError("order_id is required")
        if not _PHONE_LAST4.match(phone_last4 or ""):
            raise ValueError("phone_last4 must be exactly 4 digits")

        now = self._clock()
        payload = TokenPayload(
            order_id=order_id,
            phone_last4=phone_last4,
            service=service or "",
            area=area or "",
            issued_at=_to_millis(now),
            expires_at=_to_millis(now + ttl),
        )
        encoded = _b64url_encode(payload.serialize())
        return f"{encoded}.{self._sign(encoded)}"

    def verify(self, token: Optional[str]) -> Optional[TokenPayload]:
        parts = str(token or "").split(".")
        if len(parts) != 2 or not all(parts):
            return None
        encoded, signature = parts

        try:
            expected = self._sign(encoded)
        except UnicodeEncodeError:
            return None
        if not hmac.compare_digest(signature.encode("utf-8"), expected.encode("utf-8")):
            logger.warning("Token signature mismatch")
            return None

        try:
            payload = TokenPayload.model_validate(json.loads(_b64url_decode(encoded)))
        except (binascii.Error, ValueError, ValidationError):
            logger.warning("Token payload could not be decoded")
            return None

        if _to_millis(self._clock()) >= payload.expires_at:
            logger.info("Expired token for order {}", payload.order_id)
            return None
        return payload
