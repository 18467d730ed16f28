from ugc_reviews.container import get_container
from ugc_reviews.decorators import lambda_wrapper
from ugc_reviews.responses import success, unauthorized
from ugc_reviews.reviews import ReviewStatus
from interface import ListReviewsRequest
from service import fetch_review_page


@lambda_wrapper(model=ListReviewsRequest)
def lambda_handler(request: ListReviewsRequest, context):
    if request.status != ReviewStatus.APPROVED and not request.is_admin:
        return unauthorized("Only approved reviews are public")

    page = fetch_review_page(
        reviews=get_container().reviews,
        status=request.status,
        page=request.page,
        page_size=request.page_size,
        admin=request.is_admin,
    )
    return success(page)
