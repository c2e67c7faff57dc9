from typing import Self

from pydantic import BaseModel, ConfigDict, Field, RootModel, model_validator


class ReviewSuggestion(BaseModel):
    """A single, actionable suggestion for improving a file."""

    model_config = ConfigDict(frozen=True)

    line_number: int = Field(ge=0, description="The line the suggestion refers to. 0 if it applies to the whole file.")
    category: str = Field(description="The category of the suggestion, e.g. Logic, Security, Performance, Style, Readability.")
    description: str = Field(description="A clear and detailed explanation of the issue or area for improvement.")
    suggested_fix: str = Field(description="A concrete suggestion for a fix, including a code snippet if applicable.")


class ReviewResult(BaseModel):
    """The review of exactly one file."""

    model_config = ConfigDict(frozen=True)

    summary: str = Field(description="A concise, high-level summary of the code's purpose and overall quality.")
    suggestions: list[ReviewSuggestion] = Field(default_factory=list, description="The suggestions, in the order they were made.")

    @property
    def has_suggestions(self) -> bool:
        return len(self.suggestions) > 0


class FileReview(BaseModel):
    """A file's content along with its review."""

    model_config = ConfigDict(frozen=True)

    path: str = Field(description="The path of the reviewed file.")
    content: str = Field(description="The text that was reviewed.")
    review: ReviewResult = Field(description="The review of the file.")


class DuplicateReviewError(KeyError):
    """A review for the path was already recorded in this run."""

    def __init__(self, path: str):
        super().__init__(f"A review for {path} has already been recorded")


class BatchReviewAggregate(RootModel[dict[str, ReviewResult]]):
    """Reviews keyed by file path. Entries are only ever added."""

    root: dict[str, ReviewResult] = Field(default_factory=dict)

    def add(self, path: str, review: ReviewResult) -> None:
        if path in self.root:
            raise DuplicateReviewError(path)

        self.root[path] = review

    def __contains__(self, path: str) -> bool:
        return path in self.root

    def __len__(self) -> int:
        return len(self.root)

    @property
    def paths(self) -> list[str]:
        return list(self.root)

    def files_with_suggestions(self) -> dict[str, ReviewResult]:
        return {path: review for path, review in self.root.items() if review.has_suggestions}

    def count_suggestions(self) -> int:
        return sum(len(review.suggestions) for review in self.root.values())


class ReviewProgress(BaseModel):
    """How many of the files selected for a batch review have been processed."""

    model_config = ConfigDict(frozen=True)

    processed: int = Field(ge=0, description="The number of files processed so far, successfully or not.")
    total: int = Field(ge=0, description="The number of files selected for review.")

    @model_validator(mode="after")
    def validate_processed(self) -> Self:
        if self.processed > self.total:
            msg = f"Processed count {self.processed} exceeds total {self.total}"
            raise ValueError(msg)

        return self

    @property
    def done(self) -> bool:
        return self.processed == self.total

    def advance(self) -> "ReviewProgress":
        return ReviewProgress(processed=self.processed + 1, total=self.total)


class RepositoryReviewReport(BaseModel):
    """The outcome of reviewing every reviewable file of a repository."""

    results: BatchReviewAggregate = Field(default_factory=BatchReviewAggregate, description="The reviews, keyed by file path.")
    progress: ReviewProgress = Field(description="The final progress of the run.")
    failed: list[str] = Field(default_factory=list, description="The paths that could not be fetched or reviewed.")
