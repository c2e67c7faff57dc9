import asyncio
from collections.abc import Sequence
from typing import Any, overload

import pytest
from pydantic import BaseModel

from github_review_mcp.clients.errors.gateway import GatewayError, ResourceNotFoundError
from github_review_mcp.clients.models.github import FileDescriptor, RepositoryListing, RepositoryReference
from github_review_mcp.models.review import ReviewResult, ReviewSuggestion
from github_review_mcp.review.orchestrator import RepositoryReviewer

TEST_CREDENTIAL = "test-gemini-api-key"


class FakeContentGateway:
    """An in-memory repository. Paths in `errors` are listed but fail to fetch."""

    def __init__(
        self,
        files: dict[str, str] | None = None,
        errors: dict[str, GatewayError] | None = None,
        listing_error: GatewayError | None = None,
        truncated: bool = False,
        delay: float = 0,
    ):
        self.files: dict[str, str] = files or {}
        self.errors: dict[str, GatewayError] = errors or {}
        self.listing_error: GatewayError | None = listing_error
        self.truncated: bool = truncated
        self.delay: float = delay

        self.list_calls: list[RepositoryReference] = []
        self.fetch_calls: list[str] = []

    async def list_files(self, repository: RepositoryReference) -> RepositoryListing:
        self.list_calls.append(repository)

        if self.listing_error:
            raise self.listing_error

        paths: list[str] = [*self.files, *self.errors]

        return RepositoryListing(
            files=[FileDescriptor(path=path, identifier=f"sha-{path}") for path in paths],
            truncated=self.truncated,
        )

    async def fetch_content(self, repository: RepositoryReference, path: str) -> str:
        self.fetch_calls.append(path)

        await asyncio.sleep(self.delay)

        if error := self.errors.get(path):
            raise error

        if path not in self.files:
            raise ResourceNotFoundError(action="Get file", resource=path)

        return self.files[path]


class FakeReviewGateway:
    """Reviews every file with one suggestion, unless the file is in `errors`."""

    def __init__(self, errors: dict[str, GatewayError] | None = None, delay: float = 0):
        self.errors: dict[str, GatewayError] = errors or {}
        self.delay: float = delay

        self.calls: list[str] = []
        self.credentials: list[str] = []

    async def review(self, file_name: str, text: str, credential: str) -> ReviewResult:
        self.calls.append(file_name)
        self.credentials.append(credential)

        await asyncio.sleep(self.delay)

        if error := self.errors.get(file_name):
            raise error

        return ReviewResult(
            summary=f"Review of {file_name}",
            suggestions=[
                ReviewSuggestion(line_number=1, category="Style", description=f"{len(text)} characters", suggested_fix="Add a docstring.")
            ],
        )


@pytest.fixture
def repository() -> RepositoryReference:
    return RepositoryReference(owner="octo", name="demo")


@pytest.fixture
def content_gateway() -> FakeContentGateway:
    return FakeContentGateway(
        files={
            "src/a.ts": "export const a = 1;\n",
            "src/b.py": "b = 2\n",
            "readme.md": "# Demo\n",
        }
    )


@pytest.fixture
def review_gateway() -> FakeReviewGateway:
    return FakeReviewGateway()


@pytest.fixture
def reviewer(content_gateway: FakeContentGateway, review_gateway: FakeReviewGateway) -> RepositoryReviewer:
    return RepositoryReviewer(content_gateway=content_gateway, review_gateway=review_gateway)


def handle_exclude_keys(dictionary: dict[str, Any], exclude_keys: list[str] | None = None) -> dict[str, Any]:
    if exclude_keys is None:
        return dictionary
    return {key: value for key, value in dictionary.items() if key not in exclude_keys}


@overload
def dump_for_snapshot(
    basemodel: None,
    /,
    exclude_keys: list[str] | None = None,
    exclude_none: bool = True,
    **dump_kwargs: Any,
) -> None:
    return None


@overload
def dump_for_snapshot(
    basemodel: BaseModel,
    /,
    exclude_keys: list[str] | None = None,
    exclude_none: bool = True,
    **dump_kwargs: Any,
) -> dict[str, Any]:
    return handle_exclude_keys(basemodel.model_dump(exclude_none=exclude_none, **dump_kwargs), exclude_keys)


def dump_for_snapshot(
    basemodel: None | BaseModel,
    /,
    exclude_keys: list[str] | None = None,
    exclude_none: bool = True,
    **dump_kwargs: Any,
) -> dict[str, Any] | None:
    if basemodel is None:
        return None

    return handle_exclude_keys(basemodel.model_dump(exclude_none=exclude_none, **dump_kwargs), exclude_keys)


def dump_list_for_snapshot(
    basemodel: None | Sequence[BaseModel],
    /,
    exclude_keys: list[str] | None = None,
    exclude_none: bool = True,
    **dump_kwargs: Any,
) -> list[dict[str, Any]] | None:
    if basemodel is None:
        return []

    return [dump_for_snapshot(item, exclude_keys, exclude_none, **dump_kwargs) for item in basemodel]
