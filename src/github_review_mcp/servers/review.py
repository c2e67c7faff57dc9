from collections.abc import Callable
from logging import Logger
from typing import Any

from fastmcp import Context, FastMCP
from fastmcp.tools import Tool
from fastmcp.utilities.logging import get_logger

from github_review_mcp.clients.gemini import get_gemini_api_key
from github_review_mcp.clients.models.github import RepositoryListing, RepositoryReference
from github_review_mcp.models.repository.tree import RepositoryTree
from github_review_mcp.models.review import FileReview, RepositoryReviewReport, ReviewProgress
from github_review_mcp.review.orchestrator import RepositoryReviewer
from github_review_mcp.servers.shared.annotations import OWNER, PATH, REPO

DEFAULT_MAX_CONCURRENCY = 1


class ReviewServer:
    """Exposes repository trees and AI code reviews as MCP tools."""

    reviewer: RepositoryReviewer
    credential_provider: Callable[[], str | None]
    max_concurrency: int
    logger: Logger

    def __init__(
        self,
        reviewer: RepositoryReviewer,
        credential_provider: Callable[[], str | None] | None = None,
        max_concurrency: int = DEFAULT_MAX_CONCURRENCY,
        logger: Logger | None = None,
    ):
        self.reviewer = reviewer
        self.credential_provider = credential_provider or get_gemini_api_key
        self.max_concurrency = max_concurrency
        self.logger = logger or get_logger(name=__name__)

    def register_tools(self, fastmcp: FastMCP[Any]) -> FastMCP[Any]:
        _ = fastmcp.add_tool(tool=Tool.from_function(fn=self.get_repository_tree))
        _ = fastmcp.add_tool(tool=Tool.from_function(fn=self.review_file))
        _ = fastmcp.add_tool(tool=Tool.from_function(fn=self.review_repository))

        return fastmcp

    async def _get_tree(self, repository: RepositoryReference) -> RepositoryTree:
        listing: RepositoryListing = await self.reviewer.content_gateway.list_files(repository=repository)

        return RepositoryTree.from_listing(repository=repository, listing=listing)

    async def get_repository_tree(self, owner: OWNER, repo: REPO) -> RepositoryTree:
        """Get the directories and files of the default branch of a GitHub repository as a tree.

        Directories are listed before files."""

        return await self._get_tree(repository=RepositoryReference(owner=owner, name=repo))

    async def review_file(self, owner: OWNER, repo: REPO, path: PATH) -> FileReview:
        """Review a single file from the default branch of a GitHub repository.

        Returns a summary of the file and a list of suggestions, each with a line number (0 for the whole file), a category,
        a description and a suggested fix. An empty list of suggestions means no issues were found."""

        repository = RepositoryReference(owner=owner, name=repo)

        return await self.reviewer.review_file(repository=repository, path=path, credential=self.credential_provider())

    async def review_repository(self, owner: OWNER, repo: REPO, context: Context) -> RepositoryReviewReport:
        """Review every source code file on the default branch of a GitHub repository.

        Files that cannot be fetched or reviewed are left out of the results and listed under `failed`."""

        repository = RepositoryReference(owner=owner, name=repo)

        credential: str | None = self.reviewer.require_credential(self.credential_provider())

        repository_tree: RepositoryTree = await self._get_tree(repository=repository)

        if repository_tree.truncated:
            await context.warning(f"The file tree of {repository.slug} is truncated. Some files will not be reviewed.")

        async def report_progress(progress: ReviewProgress) -> None:
            await context.report_progress(progress=progress.processed, total=progress.total)

        return await self.reviewer.review_repository(
            repository=repository,
            tree=repository_tree.nodes,
            credential=credential,
            on_progress=report_progress,
            max_concurrency=self.max_concurrency,
        )
