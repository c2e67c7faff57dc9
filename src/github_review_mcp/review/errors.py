from github_review_mcp.clients.models.github import RepositoryReference
from github_review_mcp.models.review import ReviewProgress

ExtraInfoType = dict[str, str | None]


class ReviewError(Exception):
    """A review could not be started or was stopped before it finished."""

    def __init__(self, message: str, extra_info: ExtraInfoType | None = None):
        msg = message
        if extra_info:
            msg += " (" + ", ".join([f"{key}: {value}" for key, value in extra_info.items() if value is not None]) + ")"
        super().__init__(msg)


class MissingCredentialError(ReviewError):
    """No review credential is configured. Nothing was requested."""

    def __init__(self):
        super().__init__(message="A Gemini API key is required. Set GEMINI_API_KEY or GOOGLE_API_KEY before running a review.")


class NoReviewableFilesError(ReviewError):
    """The repository has no files with a reviewable extension."""

    def __init__(self, repository: RepositoryReference):
        super().__init__(message="No reviewable source code files were found.", extra_info={"repository": repository.slug})


class ReviewCanceledError(ReviewError):
    """The batch review was canceled before every file was processed."""

    def __init__(self, repository: RepositoryReference, progress: ReviewProgress):
        self.progress: ReviewProgress = progress
        super().__init__(
            message="The repository review was canceled.",
            extra_info={"repository": repository.slug, "processed": f"{progress.processed}/{progress.total}"},
        )
