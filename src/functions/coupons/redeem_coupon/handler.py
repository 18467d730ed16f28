from ugc_reviews.container import get_container
from ugc_reviews.decorators import lambda_wrapper
from ugc_reviews.responses import from_result, success
from interface import RedeemCouponRequest


@lambda_wrapper(model=RedeemCouponRequest, require_admin=True)
def lambda_handler(request: RedeemCouponRequest, context):
    result = get_container().coupons.redeem(request.code)
    if not result.ok:
        return from_result(result)
    return success({"ok": True, "used_at": result.value.used_at.isoformat()})
