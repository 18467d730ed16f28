from datetime import datetime, timezone
from urllib.parse import urlencode

from ugc_reviews.container import get_container
from ugc_reviews.decorators import lambda_wrapper
from ugc_reviews.responses import success
from interface import IssueTokenRequest


@lambda_wrapper(model=IssueTokenRequest, require_admin=True)
def lambda_handler(request: IssueTokenRequest, context):
    container = get_container()
    signer = container.tokens

    token = signer.issue(
        order_id=request.order_id,
        phone_last4=request.phone_last4,
        service=request.service or "",
        area=request.area or "",
    )
    payload = signer.verify(token)
    expires_at = datetime.fromtimestamp(payload.expires_at / 1000, tz=timezone.utc)

    body = {"token": token, "expires_at": expires_at.isoformat()}
    form_url = container.settings.review_form_url
    if form_url:
        separator = "&" if "?" in form_url else "?"
        body["submit_url"] = f"{form_url}{separator}{urlencode({'t': token})}"

    return success(body)
