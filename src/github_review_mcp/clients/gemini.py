import os
from collections.abc import Callable
from logging import Logger, getLogger
from typing import Self

import aiohttp
import httpx
from google.genai import Client as GoogleGenaiClient
from google.genai.errors import APIError as GoogleGenaiAPIError
from google.genai.errors import UnknownApiResponseError as GoogleGenaiUnknownApiResponseError
from google.genai.types import Candidate, GenerateContentConfig, GenerateContentResponse
from pydantic import BaseModel, Field, ValidationError

from github_review_mcp.clients.errors.gateway import InvalidCredentialError, MalformedResponseError, RequestError
from github_review_mcp.clients.extract import extract_single_object_from_text
from github_review_mcp.models.review import ReviewResult, ReviewSuggestion
from github_review_mcp.prompts.review_code import REVIEW_SYSTEM_PROMPT, build_review_prompt

DEFAULT_GEMINI_MODEL = "gemini-2.5-flash"

UNAUTHORIZED_ERROR = 401
FORBIDDEN_ERROR = 403

INVALID_KEY_MARKERS = ("API key not valid", "API_KEY_INVALID")


def get_gemini_api_key() -> str | None:
    env_vars: list[str] = ["GEMINI_API_KEY", "GOOGLE_API_KEY"]
    for env_var in env_vars:
        if api_key := os.environ.get(env_var):
            return api_key
    return None


def get_gemini_model() -> str:
    return os.getenv("GEMINI_MODEL") or DEFAULT_GEMINI_MODEL


class GeminiSuggestion(BaseModel):
    line_number: int = Field(description="The relevant line number for the suggestion. Use 0 if it applies to the whole file.")
    category: str = Field(description="Logic, Security, Performance, Style, Readability, or Best Practice.")
    description: str = Field(description="A clear and detailed explanation of the issue or area for improvement.")
    suggestion: str = Field(description="A concrete suggestion for a fix, including a code snippet if applicable.")


class GeminiReview(BaseModel):
    """The response schema requested from Gemini."""

    summary: str = Field(description="A concise, high-level summary of the code's purpose and overall quality in 2-3 sentences.")
    suggestions: list[GeminiSuggestion] = Field(description="A list of specific, actionable suggestions for improvement.")

    @classmethod
    def from_text(cls, text: str) -> Self:
        return extract_single_object_from_text(text, object_type=cls)

    def to_review_result(self) -> ReviewResult:
        return ReviewResult(
            summary=self.summary,
            suggestions=[
                ReviewSuggestion(
                    # Models occasionally answer -1 for "no specific line".
                    line_number=max(suggestion.line_number, 0),
                    category=suggestion.category,
                    description=suggestion.description,
                    suggested_fix=suggestion.suggestion,
                )
                for suggestion in self.suggestions
            ],
        )


def is_invalid_credential(e: GoogleGenaiAPIError) -> bool:
    if e.code in {UNAUTHORIZED_ERROR, FORBIDDEN_ERROR}:
        return True

    return any(marker in str(e) for marker in INVALID_KEY_MARKERS)


def get_candidate_from_response(response: GenerateContentResponse) -> Candidate | None:
    if response.candidates and response.candidates[0]:
        return response.candidates[0]

    return None


def default_client_factory(credential: str) -> GoogleGenaiClient:
    return GoogleGenaiClient(api_key=credential)


class GeminiReviewClient:
    """Reviews files with a Gemini model, asking for a JSON reply that matches `GeminiReview`."""

    model: str
    temperature: float
    logger: Logger

    def __init__(
        self,
        model: str | None = None,
        temperature: float = 0.2,
        client_factory: Callable[[str], GoogleGenaiClient] | None = None,
        logger: Logger | None = None,
    ):
        self.model = model or get_gemini_model()
        self.temperature = temperature
        self.client_factory: Callable[[str], GoogleGenaiClient] = client_factory or default_client_factory
        self.logger = logger or getLogger(__name__)
        self._clients: dict[str, GoogleGenaiClient] = {}

    def get_client(self, credential: str) -> GoogleGenaiClient:
        """Return the SDK client for the credential, creating it on first use."""

        if (client := self._clients.get(credential)) is None:
            client = self.client_factory(credential)
            self._clients[credential] = client

        return client

    async def review(self, file_name: str, text: str, credential: str) -> ReviewResult:
        """Review a file.

        Args:
            file_name: The path of the file, shown to the model.
            text: The content of the file.
            credential: The Gemini API key. It is never logged.

        Raises:
            InvalidCredentialError: If Gemini rejects the API key.
            MalformedResponseError: If the reply is empty or does not match the response schema.
            RequestError: If the request fails for any other reason.
        """

        client: GoogleGenaiClient = self.get_client(credential)

        self.logger.info(f"Requesting review of {file_name} ({len(text)} characters) from {self.model}")

        try:
            response: GenerateContentResponse = await client.aio.models.generate_content(
                model=self.model,
                contents=build_review_prompt(file_name=file_name, code=text),
                config=GenerateContentConfig(
                    system_instruction=REVIEW_SYSTEM_PROMPT,
                    temperature=self.temperature,
                    response_mime_type="application/json",
                    response_schema=GeminiReview,
                ),
            )
        except GoogleGenaiAPIError as e:
            if is_invalid_credential(e):
                self.logger.error(f"Gemini rejected the API key while reviewing {file_name}")

                raise InvalidCredentialError(message=e.message) from e

            self.logger.error(f"Error requesting review of {file_name}: {e}")

            raise RequestError(action="Review file", message=str(e), extra_info={"file_name": file_name}) from e
        except GoogleGenaiUnknownApiResponseError as e:
            self.logger.error(f"Unparseable reply to the review request for {file_name}: {e}")

            raise MalformedResponseError(file_name=file_name, reason=str(e)) from e
        except (httpx.HTTPError, aiohttp.ClientError, TimeoutError) as e:
            self.logger.error(f"Transport error requesting review of {file_name}: {e}")

            raise RequestError(action="Review file", message=str(e), extra_info={"file_name": file_name}) from e

        if not (response_text := response.text):
            candidate = get_candidate_from_response(response)
            finish_reason = candidate.finish_reason if candidate else None

            raise MalformedResponseError(file_name=file_name, reason=f"No content in response: {finish_reason}")

        try:
            gemini_review = GeminiReview.from_text(response_text)
        except ValidationError as e:
            raise MalformedResponseError(file_name=file_name, reason=str(e)) from e

        self.logger.info(f"Received review of {file_name} with {len(gemini_review.suggestions)} suggestions")

        return gemini_review.to_review_result()
