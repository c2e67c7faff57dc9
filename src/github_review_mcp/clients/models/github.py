from typing import Literal, Self
from urllib.parse import urlparse

from pydantic import BaseModel, ConfigDict, Field

GITHUB_HOSTNAMES = {"github.com", "www.github.com"}


class InvalidRepositoryReferenceError(ValueError):
    """The text does not name a GitHub repository."""

    def __init__(self, value: str):
        super().__init__(f"{value!r} is not a GitHub repository URL or an owner/repo pair")


class RepositoryReference(BaseModel):
    """An owner/name pair identifying a repository."""

    model_config = ConfigDict(frozen=True)

    owner: str = Field(description="The owner of the repository.")
    name: str = Field(description="The name of the repository.")

    @classmethod
    def from_url(cls, url: str) -> Self:
        """Parse a repository URL such as `https://github.com/owner/repo.git`. Extra path segments are ignored."""

        parsed = urlparse(url)

        if parsed.hostname not in GITHUB_HOSTNAMES:
            raise InvalidRepositoryReferenceError(url)

        path_parts = [part for part in parsed.path.split("/") if part]

        if len(path_parts) < 2:
            raise InvalidRepositoryReferenceError(url)

        owner, name = path_parts[0], path_parts[1].removesuffix(".git")

        if not name:
            raise InvalidRepositoryReferenceError(url)

        return cls(owner=owner, name=name)

    @classmethod
    def from_slug(cls, slug: str) -> Self:
        owner, _, name = slug.strip().partition("/")

        if not owner or not name or "/" in name:
            raise InvalidRepositoryReferenceError(slug)

        return cls(owner=owner, name=name.removesuffix(".git"))

    @classmethod
    def parse(cls, value: str) -> Self:
        if "://" in value:
            return cls.from_url(value)

        return cls.from_slug(value)

    @property
    def slug(self) -> str:
        return f"{self.owner}/{self.name}"


class FileDescriptor(BaseModel):
    """A file or directory entry from a repository listing."""

    model_config = ConfigDict(frozen=True)

    path: str = Field(min_length=1, description="The '/'-delimited path of the entry from the repository root.")
    kind: Literal["blob", "tree"] = Field(default="blob", description="Whether the entry is a file (blob) or a directory (tree).")
    identifier: str = Field(description="The content-addressing identifier (git SHA) of the entry.")


class RepositoryListing(BaseModel):
    """The files of a repository's default branch."""

    model_config = ConfigDict(frozen=True)

    files: list[FileDescriptor] = Field(description="The files in the repository.")
    truncated: bool = Field(
        default=False,
        description="Whether the listing has been truncated by GitHub. If true, the listing does not contain all files.",
    )
