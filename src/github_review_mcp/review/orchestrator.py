import asyncio
import inspect
from collections import deque
from collections.abc import Awaitable, Callable, Iterable, Sequence
from logging import Logger

from fastmcp.utilities.logging import get_logger

from github_review_mcp.clients.errors.gateway import GatewayError, ReviewPhase
from github_review_mcp.clients.models.github import RepositoryReference
from github_review_mcp.clients.protocols import ContentGateway, ReviewGateway
from github_review_mcp.models.repository.extensions import SOURCE_CODE_EXTENSIONS
from github_review_mcp.models.repository.tree import TreeNode, filter_reviewable
from github_review_mcp.models.review import (
    BatchReviewAggregate,
    FileReview,
    RepositoryReviewReport,
    ReviewProgress,
    ReviewResult,
)
from github_review_mcp.review.errors import MissingCredentialError, NoReviewableFilesError, ReviewCanceledError

ProgressCallback = Callable[[ReviewProgress], Awaitable[None] | None]


class BatchReviewState:
    """The results and progress of one batch run. All writes go through `record`, one at a time."""

    def __init__(self, total: int, on_progress: ProgressCallback | None = None):
        self.results: BatchReviewAggregate = BatchReviewAggregate()
        self.failed: list[str] = []
        self.progress: ReviewProgress = ReviewProgress(processed=0, total=total)
        self.on_progress: ProgressCallback | None = on_progress
        self._lock: asyncio.Lock = asyncio.Lock()

    async def emit_progress(self) -> None:
        if self.on_progress is None:
            return

        result = self.on_progress(self.progress)

        if inspect.isawaitable(result):
            await result

    async def record(self, path: str, review: ReviewResult | None) -> None:
        async with self._lock:
            if review is None:
                self.failed.append(path)
            else:
                self.results.add(path=path, review=review)

            self.progress = self.progress.advance()

            await self.emit_progress()

    def to_report(self) -> RepositoryReviewReport:
        return RepositoryReviewReport(results=self.results, progress=self.progress, failed=self.failed)


class RepositoryReviewer:
    """Fetches files through a content gateway and has them reviewed through a review gateway."""

    content_gateway: ContentGateway
    review_gateway: ReviewGateway
    logger: Logger

    def __init__(self, content_gateway: ContentGateway, review_gateway: ReviewGateway, logger: Logger | None = None):
        self.content_gateway = content_gateway
        self.review_gateway = review_gateway
        self.logger = logger or get_logger(name=__name__)

    def require_credential(self, credential: str | None) -> str:
        """Raise a MissingCredentialError if no review credential was provided."""

        if not credential:
            raise MissingCredentialError

        return credential

    async def _fetch(self, repository: RepositoryReference, path: str) -> str:
        try:
            return await self.content_gateway.fetch_content(repository=repository, path=path)
        except GatewayError as e:
            e.phase = ReviewPhase.FETCH
            raise

    async def _review(self, path: str, content: str, credential: str) -> ReviewResult:
        try:
            return await self.review_gateway.review(file_name=path, text=content, credential=credential)
        except GatewayError as e:
            e.phase = ReviewPhase.REVIEW
            raise

    async def review_file(self, repository: RepositoryReference, path: str, credential: str | None) -> FileReview:
        """Fetch a file and review it.

        Args:
            repository: The repository the file belongs to.
            path: The path of the file.
            credential: The review credential.

        Raises:
            MissingCredentialError: If no credential was provided. No requests are made.
            GatewayError: The first failing request's error, with `phase` set to the phase that failed.
        """

        credential = self.require_credential(credential)

        content: str = await self._fetch(repository=repository, path=path)

        review: ReviewResult = await self._review(path=path, content=content, credential=credential)

        return FileReview(path=path, content=content, review=review)

    async def review_repository(
        self,
        repository: RepositoryReference,
        tree: Sequence[TreeNode],
        credential: str | None,
        allow_list: Iterable[str] = SOURCE_CODE_EXTENSIONS,
        on_progress: ProgressCallback | None = None,
        cancel_event: asyncio.Event | None = None,
        max_concurrency: int = 1,
    ) -> RepositoryReviewReport:
        """Review every file in the tree whose extension is in the allow-list.

        Files are processed one at a time, in tree order, unless `max_concurrency` is raised. A file that cannot be
        fetched or reviewed is logged and left out of the results; it does not stop the run.

        Args:
            repository: The repository the tree belongs to.
            tree: The top-level nodes of the repository tree.
            credential: The review credential.
            allow_list: The file extensions (with leading dot) to review.
            on_progress: Called with the progress before the first file and after every file. May be async. An exception it
                raises stops the run and is re-raised.
            cancel_event: When set, no new file is started. Files already in flight finish.
            max_concurrency: The number of files reviewed at the same time.

        Raises:
            MissingCredentialError: If no credential was provided.
            NoReviewableFilesError: If no file matches the allow-list. No requests are made.
            ReviewCanceledError: If the run was canceled before every file was processed.
        """

        credential = self.require_credential(credential)

        if max_concurrency < 1:
            msg = f"max_concurrency must be at least 1, got {max_concurrency}"
            raise ValueError(msg)

        files: list[TreeNode] = filter_reviewable(tree, allow_list=allow_list)

        if not files:
            raise NoReviewableFilesError(repository=repository)

        self.logger.info(f"Reviewing {len(files)} files of {repository.slug} with up to {max_concurrency} at a time")

        state = BatchReviewState(total=len(files), on_progress=on_progress)
        await state.emit_progress()

        pending: deque[str] = deque(file.path for file in files)

        async def worker() -> None:
            while pending:
                if cancel_event is not None and cancel_event.is_set():
                    return

                path: str = pending.popleft()

                try:
                    content: str = await self._fetch(repository=repository, path=path)
                    review: ReviewResult | None = await self._review(path=path, content=content, credential=credential)
                except GatewayError as e:
                    self.logger.warning(f"Failed to review {path} during the {e.phase} phase: {e}")
                    review = None
                except Exception:
                    self.logger.exception(f"Unexpected error reviewing {path}")
                    review = None

                await state.record(path=path, review=review)

        # The first worker to fail cancels the others.
        try:
            async with asyncio.TaskGroup() as task_group:
                for _ in range(min(max_concurrency, len(files))):
                    _ = task_group.create_task(worker())
        except ExceptionGroup as e:
            raise e.exceptions[0] from None

        if not state.progress.done:
            self.logger.info(f"Review of {repository.slug} canceled after {state.progress.processed} of {state.progress.total} files")

            raise ReviewCanceledError(repository=repository, progress=state.progress)

        self.logger.info(
            f"Reviewed {len(state.results)} of {state.progress.total} files of {repository.slug}, {len(state.failed)} failed"
        )

        return state.to_report()
