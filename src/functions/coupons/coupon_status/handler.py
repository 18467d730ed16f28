from ugc_reviews.container import get_container
from ugc_reviews.decorators import lambda_wrapper
from ugc_reviews.responses import success
from interface import CouponStatusRequest


@lambda_wrapper(model=CouponStatusRequest)
def lambda_handler(request: CouponStatusRequest, context):
    status = get_container().coupons.status(request.code)
    return success(status.model_dump(mode="json", exclude_none=True))
