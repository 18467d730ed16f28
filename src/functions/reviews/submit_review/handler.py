from ugc_reviews.container import get_container
from ugc_reviews.decorators import lambda_wrapper
from ugc_reviews.responses import created, from_result
from interface import SubmitReviewRequest


@lambda_wrapper(model=SubmitReviewRequest)
def lambda_handler(request: SubmitReviewRequest, context):
    result = get_container().submissions.submit(
        token=request.token,
        name=request.name,
        area=request.area,
        service=request.service,
        rating=request.rating,
        comment=request.comment,
        images=request.images,
        email=request.email,
    )
    if not result.ok:
        return from_result(result)
    return created({"id": result.value})
