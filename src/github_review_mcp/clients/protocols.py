from typing import Protocol

from github_review_mcp.clients.models.github import RepositoryListing, RepositoryReference
from github_review_mcp.models.review import ReviewResult


class ContentGateway(Protocol):
    """Lists and reads the files of a remote repository."""

    async def list_files(self, repository: RepositoryReference) -> RepositoryListing:
        """Return every file on the default branch.

        Raises:
            ResourceNotFoundError: If the repository does not exist.
            RateLimitedError: If the request quota is exhausted.
            RequestError: If the request fails for any other reason.
        """
        ...

    async def fetch_content(self, repository: RepositoryReference, path: str) -> str:
        """Return the decoded text of a file on the default branch.

        Raises:
            ResourceNotFoundError: If the path does not exist.
            ContentDecodeError: If the content is not text.
            RequestError: If the request fails for any other reason.
        """
        ...


class ReviewGateway(Protocol):
    """Produces an AI review of a single file."""

    async def review(self, file_name: str, text: str, credential: str) -> ReviewResult:
        """Review the text of a file.

        Raises:
            InvalidCredentialError: If the credential is rejected.
            MalformedResponseError: If the reply cannot be parsed into a ReviewResult.
            RequestError: If the request fails for any other reason.
        """
        ...
