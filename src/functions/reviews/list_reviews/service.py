from typing import Dict, List

from ugc_reviews.reviews import Review, ReviewStatus, ReviewStore


def fetch_review_page(
    reviews: ReviewStore, status: ReviewStatus, page: int, page_size: int, admin: bool
) -> Dict:
    """
    Returns one page of reviews in ``status``, newest first. Non-admin
    callers only ever get the public view of each record.
    """
    matching: List[Review] = reviews.list(status)
    start = (page - 1) * page_size
    window = matching[start : start + page_size]

    return {
        "items": [r.admin_view() if admin else r.public_view() for r in window],
        "page": page,
        "page_size": page_size,
        "total": len(matching),
        "has_more": start + page_size < len(matching),
    }
