from ugc_reviews.container import get_container
from ugc_reviews.decorators import lambda_wrapper
from ugc_reviews.responses import from_result, success
from interface import ModerateReviewRequest


@lambda_wrapper(model=ModerateReviewRequest, require_admin=True)
def lambda_handler(request: ModerateReviewRequest, context):
    result = get_container().moderation.moderate(
        review_id=request.id,
        action=request.action.strip().lower(),
        owner_reply=request.owner_reply,
    )
    if not result.ok:
        return from_result(result)
    return success({"ok": True, "item": result.value.admin_view()})
