import base64
import binascii
import os
from collections.abc import Awaitable, Callable, Sequence
from logging import Logger, getLogger
from typing import TYPE_CHECKING, Any, Literal, overload

from githubkit import GitHub as GitHubKit
from githubkit.auth.token import TokenAuthStrategy
from githubkit.auth.unauth import UnauthAuthStrategy
from githubkit.exception import GitHubException as GitHubKitGitHubException
from githubkit.exception import RequestFailed as GitHubKitRequestFailed
from githubkit.response import Response as GitHubKitResponse
from githubkit.versions.v2022_11_28.models import ContentFile as GitHubKitContentFile
from pydantic import BaseModel

from github_review_mcp.clients.errors.gateway import (
    ContentDecodeError,
    RateLimitedError,
    RequestError,
    ResourceNotFoundError,
)
from github_review_mcp.clients.models.github import FileDescriptor, RepositoryListing, RepositoryReference
from github_review_mcp.models.repository.extensions import SOURCE_CODE_EXTENSIONS
from github_review_mcp.models.repository.tree import get_file_extension

if TYPE_CHECKING:
    from githubkit.versions.v2022_11_28.models import FullRepository as GitHubKitFullRepository
    from githubkit.versions.v2022_11_28.models import GitTree as GitHubKitGitTree

NOT_FOUND_ERROR = 404
FORBIDDEN_ERROR = 403
TOO_MANY_REQUESTS_ERROR = 429

GITHUBKIT_RESPONSE_TYPE = BaseModel | Sequence[BaseModel]


def extract_response[T: GITHUBKIT_RESPONSE_TYPE](response: GitHubKitResponse[T], /) -> T:
    """Extract the response from a response."""

    return response.parsed_data


def get_github_token() -> str | None:
    env_vars: list[str] = ["GITHUB_TOKEN", "GITHUB_PERSONAL_ACCESS_TOKEN"]
    for env_var in env_vars:
        if token := os.environ.get(env_var):
            return token
    return None


def get_githubkit_client(token: str | None = None) -> GitHubKit[Any]:
    # Public repositories can be read without a token, at a much lower rate limit.
    token = token or get_github_token()

    if token:
        return GitHubKit[TokenAuthStrategy](auth=TokenAuthStrategy(token=token), auto_retry=False)

    return GitHubKit[UnauthAuthStrategy](auth=UnauthAuthStrategy(), auto_retry=False)


def is_rate_limited(e: GitHubKitRequestFailed) -> bool:
    status_code: int = e.response.status_code

    if status_code == TOO_MANY_REQUESTS_ERROR:
        return True

    return status_code == FORBIDDEN_ERROR and e.response.headers.get("x-ratelimit-remaining") == "0"


def decode_content_file(content_file: GitHubKitContentFile) -> str:
    """Decode the text of a file returned by the contents API."""

    if content_file.encoding != "base64":
        raise ContentDecodeError(path=content_file.path, reason=f"unsupported encoding {content_file.encoding!r}")

    try:
        return base64.b64decode(content_file.content).decode("utf-8")
    except (binascii.Error, UnicodeDecodeError) as e:
        raise ContentDecodeError(path=content_file.path, reason=str(e)) from e


def prioritize_source_files(files: list[FileDescriptor]) -> list[FileDescriptor]:
    """Move source code files ahead of everything else, keeping the relative order within each group."""

    source_files = [file for file in files if get_file_extension(file.path) in SOURCE_CODE_EXTENSIONS]
    other_files = [file for file in files if get_file_extension(file.path) not in SOURCE_CODE_EXTENSIONS]

    return [*source_files, *other_files]


class GitHubRepositoryClient:
    """Reads repository listings and file contents from the GitHub REST API."""

    githubkit_client: GitHubKit[Any]
    logger: Logger

    log_requests: bool
    log_responses: bool
    log_on_error: bool

    def __init__(
        self,
        githubkit_client: GitHubKit[Any] | None = None,
        logger: Logger | None = None,
        log_requests: bool = True,
        log_responses: bool = False,
        log_on_error: bool = True,
    ):
        self.githubkit_client = githubkit_client or get_githubkit_client()
        self.logger = logger or getLogger(__name__)
        self.log_requests = log_requests
        self.log_responses = log_responses
        self.log_on_error = log_on_error

    def _get_loggers(
        self, log_request: bool | None = None, log_response: bool | None = None, log_on_error: bool | None = None
    ) -> tuple[Callable[[str], Any], Callable[[str], Any], Callable[[str], Any]]:
        request_logger = self.logger.info if log_request or self.log_requests else self.logger.debug
        response_logger = self.logger.info if log_response or self.log_responses else self.logger.debug
        error_logger = self.logger.error if log_on_error or self.log_on_error else self.logger.debug
        return request_logger, response_logger, error_logger

    @overload
    async def _perform_rest_request[T: GITHUBKIT_RESPONSE_TYPE](
        self,
        action: str,
        log_request: bool | None = None,
        log_response: bool | None = None,
        log_on_error: bool | None = None,
        error_on_not_found: Literal[False] = False,
        *,
        method: Callable[..., Awaitable[GitHubKitResponse[T]]],
        **request_args: Any,  # pyright: ignore[reportAny]
    ) -> T | None: ...

    @overload
    async def _perform_rest_request[T: GITHUBKIT_RESPONSE_TYPE](
        self,
        action: str,
        log_request: bool | None = None,
        log_response: bool | None = None,
        log_on_error: bool | None = None,
        error_on_not_found: Literal[True] = True,
        *,
        method: Callable[..., Awaitable[GitHubKitResponse[T]]],
        **request_args: Any,  # pyright: ignore[reportAny]
    ) -> T: ...

    async def _perform_rest_request[T: GITHUBKIT_RESPONSE_TYPE](
        self,
        action: str,
        log_request: bool | None = None,
        log_response: bool | None = None,
        log_on_error: bool | None = None,
        error_on_not_found: bool | None = None,
        *,
        method: Callable[..., Awaitable[GitHubKitResponse[T]]],
        **request_args: Any,  # pyright: ignore[reportAny]
    ) -> T | None:
        """Perform a request and extract the response.

        Args:
            action: The action being performed.
            log_request: Whether to log the request.
            log_response: Whether to log the response.
            log_on_error: Whether to log on error.
            error_on_not_found: Whether to raise an error if the resource is not found.

        Raises:
            ResourceNotFoundError: If the resource is not found and error_on_not_found is True.
            RateLimitedError: If the GitHub rate limit has been exhausted.
            RequestError: If the request fails.
        """

        request_logger, response_logger, error_logger = self._get_loggers(
            log_request=log_request, log_response=log_response, log_on_error=log_on_error
        )

        request_logger(f"Performing {action} using {method.__name__} with kwargs {request_args}")

        try:
            response: GitHubKitResponse[T] = await method(**request_args)
        except GitHubKitRequestFailed as e:
            if e.response.status_code == NOT_FOUND_ERROR:
                if error_on_not_found:
                    raise ResourceNotFoundError(action=action, resource=e.request.url.path) from e

                return None

            if is_rate_limited(e):
                error_logger(f"Rate limited performing {action} using {method.__name__} with kwargs {request_args}")

                raise RateLimitedError(action=action, reset_at=e.response.headers.get("x-ratelimit-reset")) from e

            error_logger(f"RequestFailed error performing {action} using {method.__name__} with kwargs {request_args}: {e}")

            raise RequestError(action=action, message=str(e)) from e
        except GitHubKitGitHubException as e:
            error_logger(f"Error performing {action} using {method.__name__} with kwargs {request_args}: {e}")

            raise RequestError(action=action, message=str(e)) from e

        extracted_response = extract_response(response)

        response_logger(f"Extracted response for {action} using {method.__name__} with kwargs {request_args}: {extracted_response}")

        return extracted_response

    async def get_default_branch(self, repository: RepositoryReference) -> str:
        """Get the default branch of a repository."""

        githubkit_repository: GitHubKitFullRepository = await self._perform_rest_request(
            action="Get repository",
            error_on_not_found=True,
            method=self.githubkit_client.rest.repos.async_get,
            owner=repository.owner,
            repo=repository.name,
        )

        return githubkit_repository.default_branch

    async def list_files(self, repository: RepositoryReference, ref: str | None = None) -> RepositoryListing:
        """List every file of a repository.

        Args:
            repository: The repository to list.
            ref: The ref of the branch or tag to list. If not provided, the default branch will be used.
        """

        if ref is None:
            ref = await self.get_default_branch(repository=repository)

        tree: GitHubKitGitTree = await self._perform_rest_request(
            action="Get repository tree",
            error_on_not_found=True,
            method=self.githubkit_client.rest.git.async_get_tree,
            owner=repository.owner,
            repo=repository.name,
            tree_sha=ref,
            recursive="1",
        )

        if tree.truncated:
            self.logger.warning(f"The file tree of {repository.slug} is truncated. Some files will not be listed.")

        files: list[FileDescriptor] = [
            FileDescriptor(path=tree_item.path, kind="blob", identifier=tree_item.sha)
            for tree_item in tree.tree
            if tree_item.type == "blob" and tree_item.path and tree_item.sha
        ]

        return RepositoryListing(files=prioritize_source_files(files), truncated=tree.truncated)

    async def fetch_content(self, repository: RepositoryReference, path: str, ref: str | None = None) -> str:
        """Get the decoded text of a file.

        Args:
            repository: The repository the file belongs to.
            path: The path of the file.
            ref: The ref of the branch or tag to read from. If not provided, GitHub uses the default branch.
        """

        request_args: dict[str, str] = {"owner": repository.owner, "repo": repository.name, "path": path}

        if ref is not None:
            request_args["ref"] = ref

        content = await self._perform_rest_request(
            action="Get file",
            error_on_not_found=True,
            method=self.githubkit_client.rest.repos.async_get_content,
            **request_args,
        )

        if not isinstance(content, GitHubKitContentFile):
            raise ContentDecodeError(path=path, reason=f"expected a file, got {type(content).__name__}")

        return decode_content_file(content_file=content)
