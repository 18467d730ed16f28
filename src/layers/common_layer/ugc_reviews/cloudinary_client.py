import hashlib
import time
from typing import Optional

import requests
from loguru import logger

from ugc_reviews.errors import UpstreamUnavailableError
from ugc_reviews.http_session import build_session

UPLOAD_URL = "https://api.cloudinary.com/v1_1/{cloud_name}/image/upload"


def sign_params(params: dict, api_secret: str) -> str:
    """Cloudinary signature: sha1 of sorted ``k=v`` pairs joined by ``&`` plus the secret."""
    entries = sorted((k, v) for k, v in params.items() if v not in (None, ""))
    to_sign = "&".join(f"{k}={v}" for k, v in entries) + api_secret
    return hashlib.sha1(to_sign.encode("utf-8")).hexdigest()


class CloudinaryUploader:
    def __init__(
        self,
        cloud_name: str,
        api_key: str,
        api_secret: str,
        folder: str = "ugc",
        max_width: int = 1600,
        timeout: float = 10.0,
        session: Optional[requests.Session] = None,
    ):
        self.cloud_name = cloud_name
        self.api_key = api_key
        self.api_secret = api_secret
        self.folder = folder
        self.transformation = f"q_auto,f_auto,w_{max_width},fl_strip_profile"
        self.timeout = timeout
        self.session = session or build_session()

    def upload(self, data: bytes, filename: str = "image") -> str:
        """Uploads raw image bytes and returns the hosted ``secure_url``."""
        if not (self.cloud_name and self.api_key and self.api_secret):
            raise UpstreamUnavailableError("Image hosting is not configured", service="cloudinary")

        params = {
            "folder": self.folder,
            "timestamp": int(time.time()),
            "transformation": self.transformation,
        }
        form = {
            **{k: str(v) for k, v in params.items()},
            "api_key": self.api_key,
            "signature": sign_params(params, self.api_secret),
        }

        try:
            resp = self.session.post(
                UPLOAD_URL.format(cloud_name=self.cloud_name),
                data=form,
                files={"file": (filename, data)},
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            logger.error(f"Cloudinary upload failed: {e}")
            raise UpstreamUnavailableError("Image upload failed", service="cloudinary") from e

        if resp.status_code >= 300:
            logger.error(f"Cloudinary upload failed ({resp.status_code}): {resp.text[:500]}")
            raise UpstreamUnavailableError("Image upload failed", service="cloudinary")

        try:
            url = resp.json().get("secure_url")
        except ValueError:
            url = None
        if not url:
            raise UpstreamUnavailableError("Image upload returned no URL", service="cloudinary")
        return url
