"""Publishing of verified branches as pull requests."""

from src.smarty.publisher.publisher import (
    PR_TITLE_MAX_LENGTH,
    Publisher,
    build_pr_body,
    build_pr_title,
)

__all__ = [
    "PR_TITLE_MAX_LENGTH",
    "Publisher",
    "build_pr_body",
    "build_pr_title",
]
