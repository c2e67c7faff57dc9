import asyncio
import signal
from contextlib import suppress
from logging import Logger
from typing import Literal

import click
import yaml
from fastmcp import FastMCP
from fastmcp.server.middleware.logging import LoggingMiddleware
from fastmcp.utilities.logging import get_logger
from pydantic import BaseModel

from github_review_mcp.clients.errors.gateway import ClientError
from github_review_mcp.clients.gemini import GeminiReviewClient
from github_review_mcp.clients.github import GitHubRepositoryClient
from github_review_mcp.clients.models.github import InvalidRepositoryReferenceError, RepositoryListing, RepositoryReference
from github_review_mcp.models.repository.tree import RepositoryTree
from github_review_mcp.models.review import FileReview, RepositoryReviewReport, ReviewProgress
from github_review_mcp.review.errors import ReviewError
from github_review_mcp.review.orchestrator import RepositoryReviewer
from github_review_mcp.servers.review import DEFAULT_MAX_CONCURRENCY, ReviewServer

logger: Logger = get_logger(name=__name__)


def new_reviewer() -> RepositoryReviewer:
    return RepositoryReviewer(
        content_gateway=GitHubRepositoryClient(logger=logger),
        review_gateway=GeminiReviewClient(logger=logger),
        logger=logger,
    )


mcp: FastMCP[None] = FastMCP[None](name="GitHub Review MCP")

mcp.add_middleware(middleware=LoggingMiddleware(include_payloads=True, logger=logger))

review_server: ReviewServer = ReviewServer(reviewer=new_reviewer(), logger=logger)
_ = review_server.register_tools(fastmcp=mcp)


def dump_model_as_yaml(model: BaseModel, /) -> str:
    return yaml.safe_dump(model.model_dump(mode="json"), sort_keys=False, indent=1, width=400)


def parse_repository(value: str) -> RepositoryReference:
    try:
        return RepositoryReference.parse(value)
    except InvalidRepositoryReferenceError as e:
        raise click.BadParameter(str(e)) from e


async def fetch_tree(reviewer: RepositoryReviewer, repository: RepositoryReference) -> RepositoryTree:
    listing: RepositoryListing = await reviewer.content_gateway.list_files(repository=repository)

    if listing.truncated:
        click.echo(f"Warning: the file tree of {repository.slug} is truncated. Some files are missing.", err=True)

    return RepositoryTree.from_listing(repository=repository, listing=listing)


async def review_repository_until_interrupted(
    reviewer: RepositoryReviewer, repository: RepositoryReference, credential: str | None, max_concurrency: int
) -> RepositoryReviewReport:
    """Review a repository. The first Ctrl+C stops new files from being started."""

    # Fail before listing the repository when no credential is configured.
    credential = reviewer.require_credential(credential)

    cancel_event = asyncio.Event()

    loop = asyncio.get_running_loop()

    with suppress(NotImplementedError):
        loop.add_signal_handler(signal.SIGINT, cancel_event.set)

    def echo_progress(progress: ReviewProgress) -> None:
        click.echo(f"Analyzing repository... ({progress.processed}/{progress.total})", err=True)

    try:
        repository_tree: RepositoryTree = await fetch_tree(reviewer=reviewer, repository=repository)

        return await reviewer.review_repository(
            repository=repository,
            tree=repository_tree.nodes,
            credential=credential,
            on_progress=echo_progress,
            cancel_event=cancel_event,
            max_concurrency=max_concurrency,
        )
    finally:
        with suppress(NotImplementedError):
            _ = loop.remove_signal_handler(signal.SIGINT)


credential_option = click.option(
    "--gemini-api-key",
    "credential",
    envvar=["GEMINI_API_KEY", "GOOGLE_API_KEY"],
    default=None,
    show_envvar=True,
    help="The Gemini API key used to review files",
)


@click.group()
def cli():
    """Review the code of public GitHub repositories with Gemini."""


@cli.command()
@click.option(
    "--mcp-transport",
    type=click.Choice(["stdio", "streamable-http"]),
    default="stdio",
    help="The transport to run the MCP server on",
)
def serve(mcp_transport: Literal["stdio", "streamable-http"]):
    """Run the MCP server."""
    mcp.run(transport=mcp_transport)


@cli.command()
@click.argument("repository")
def tree(repository: str):
    """Print the file tree of REPOSITORY (a GitHub URL or owner/repo)."""

    repository_reference = parse_repository(repository)

    try:
        repository_tree = asyncio.run(fetch_tree(reviewer=new_reviewer(), repository=repository_reference))
    except ClientError as e:
        raise click.ClickException(str(e)) from e

    click.echo(f"{repository_tree.count_files} files in {repository_reference.slug}", err=True)

    click.echo(dump_model_as_yaml(repository_tree))


@cli.command(name="review-file")
@click.argument("repository")
@click.argument("path")
@credential_option
def review_file(repository: str, path: str, credential: str | None):
    """Review the file at PATH in REPOSITORY (a GitHub URL or owner/repo)."""

    repository_reference = parse_repository(repository)

    try:
        file_review: FileReview = asyncio.run(
            new_reviewer().review_file(repository=repository_reference, path=path, credential=credential)
        )
    except (ClientError, ReviewError) as e:
        raise click.ClickException(str(e)) from e

    click.echo(dump_model_as_yaml(file_review.review))


@cli.command(name="review-repo")
@click.argument("repository")
@click.option(
    "--max-concurrency",
    type=click.IntRange(min=1),
    default=DEFAULT_MAX_CONCURRENCY,
    show_default=True,
    help="The number of files to review at the same time",
)
@credential_option
def review_repo(repository: str, max_concurrency: int, credential: str | None):
    """Review every source code file in REPOSITORY (a GitHub URL or owner/repo)."""

    repository_reference = parse_repository(repository)

    try:
        report: RepositoryReviewReport = asyncio.run(
            review_repository_until_interrupted(
                reviewer=new_reviewer(), repository=repository_reference, credential=credential, max_concurrency=max_concurrency
            )
        )
    except (ClientError, ReviewError) as e:
        raise click.ClickException(str(e)) from e

    files_with_suggestions = report.results.files_with_suggestions()

    click.echo(
        f"Reviewed {len(report.results)} of {report.progress.total} files: "
        f"{report.results.count_suggestions()} suggestions in {len(files_with_suggestions)} files, {len(report.failed)} failed.",
        err=True,
    )

    click.echo(dump_model_as_yaml(report))


if __name__ == "__main__":
    cli()
