import json
import logging
from types import SimpleNamespace
from typing import Any

import aiohttp
import httpx
import pytest
from google.genai.errors import ClientError as GoogleGenaiClientError
from google.genai.errors import ServerError as GoogleGenaiServerError
from google.genai.errors import UnknownApiResponseError as GoogleGenaiUnknownApiResponseError
from google.genai.types import Candidate, Content, FinishReason, GenerateContentResponse, Part
from inline_snapshot import snapshot

from github_review_mcp.clients.errors.gateway import InvalidCredentialError, MalformedResponseError, RequestError
from github_review_mcp.clients.gemini import GeminiReview, GeminiReviewClient, get_gemini_api_key, get_gemini_model
from tests.conftest import TEST_CREDENTIAL, dump_for_snapshot

TEST_LOGGER = logging.getLogger("tests.clients.gemini")

REVIEW_JSON = json.dumps(
    {
        "summary": "Adds two numbers.",
        "suggestions": [
            {"line_number": 3, "category": "Style", "description": "Missing type hints.", "suggestion": "def add(a: int, b: int) -> int:"},
            {"line_number": -1, "category": "Best Practice", "description": "No tests.", "suggestion": "Add a test module."},
        ],
    }
)


def text_response(text: str) -> GenerateContentResponse:
    return GenerateContentResponse(
        candidates=[Candidate(content=Content(role="model", parts=[Part(text=text)]), finish_reason=FinishReason.STOP)]
    )


class FakeGenaiClient:
    """Stands in for `google.genai.Client`, answering every request with `response` or raising `error`."""

    def __init__(self, response: GenerateContentResponse | None = None, error: Exception | None = None):
        self.response = response
        self.error = error
        self.requests: list[dict[str, Any]] = []

        self.aio = SimpleNamespace(models=SimpleNamespace(generate_content=self.generate_content))

    async def generate_content(self, **kwargs: Any) -> GenerateContentResponse | None:
        self.requests.append(kwargs)

        if self.error:
            raise self.error

        return self.response


class ClientFactory:
    def __init__(self, client: FakeGenaiClient):
        self.client = client
        self.credentials: list[str] = []

    def __call__(self, credential: str) -> FakeGenaiClient:
        self.credentials.append(credential)
        return self.client


def new_review_client(client: FakeGenaiClient) -> tuple[GeminiReviewClient, ClientFactory]:
    factory = ClientFactory(client)
    review_client = GeminiReviewClient(model="gemini-test", client_factory=factory, logger=TEST_LOGGER)  # pyright: ignore[reportArgumentType]
    return review_client, factory


def test_get_gemini_api_key(monkeypatch: pytest.MonkeyPatch):
    monkeypatch.delenv("GEMINI_API_KEY", raising=False)
    monkeypatch.delenv("GOOGLE_API_KEY", raising=False)

    assert get_gemini_api_key() is None

    monkeypatch.setenv("GOOGLE_API_KEY", "google-key")
    assert get_gemini_api_key() == "google-key"

    monkeypatch.setenv("GEMINI_API_KEY", "gemini-key")
    assert get_gemini_api_key() == "gemini-key"


def test_get_gemini_model(monkeypatch: pytest.MonkeyPatch):
    monkeypatch.delenv("GEMINI_MODEL", raising=False)
    assert get_gemini_model() == "gemini-2.5-flash"

    monkeypatch.setenv("GEMINI_MODEL", "gemini-2.5-pro")
    assert get_gemini_model() == "gemini-2.5-pro"


def test_to_review_result():
    review = GeminiReview.from_text(REVIEW_JSON).to_review_result()

    assert dump_for_snapshot(review) == snapshot(
        {
            "summary": "Adds two numbers.",
            "suggestions": [
                {
                    "line_number": 3,
                    "category": "Style",
                    "description": "Missing type hints.",
                    "suggested_fix": "def add(a: int, b: int) -> int:",
                },
                {"line_number": 0, "category": "Best Practice", "description": "No tests.", "suggested_fix": "Add a test module."},
            ],
        }
    )


class TestReview:
    async def test_review(self):
        client = FakeGenaiClient(response=text_response(REVIEW_JSON))
        review_client, factory = new_review_client(client)

        review = await review_client.review(file_name="src/add.py", text="def add(a, b):\n    return a + b\n", credential=TEST_CREDENTIAL)

        assert review.summary == "Adds two numbers."
        assert len(review.suggestions) == 2
        assert factory.credentials == [TEST_CREDENTIAL]

        request = client.requests[0]
        assert request["model"] == "gemini-test"
        assert "src/add.py" in request["contents"]
        assert "return a + b" in request["contents"]
        assert request["config"].response_mime_type == "application/json"

    async def test_fenced_json(self):
        client = FakeGenaiClient(response=text_response(f"Here is the review:\n```json\n{REVIEW_JSON}\n```\n"))
        review_client, _ = new_review_client(client)

        review = await review_client.review(file_name="src/add.py", text="", credential=TEST_CREDENTIAL)

        assert review.summary == "Adds two numbers."

    async def test_no_suggestions(self):
        client = FakeGenaiClient(response=text_response('{"summary": "Clean.", "suggestions": []}'))
        review_client, _ = new_review_client(client)

        review = await review_client.review(file_name="src/add.py", text="", credential=TEST_CREDENTIAL)

        assert not review.has_suggestions

    async def test_not_json(self):
        client = FakeGenaiClient(response=text_response("I could not review this file."))
        review_client, _ = new_review_client(client)

        with pytest.raises(MalformedResponseError, match="src/add.py"):
            _ = await review_client.review(file_name="src/add.py", text="", credential=TEST_CREDENTIAL)

    async def test_wrong_shape(self):
        client = FakeGenaiClient(response=text_response('{"summary": "No suggestions key."}'))
        review_client, _ = new_review_client(client)

        with pytest.raises(MalformedResponseError):
            _ = await review_client.review(file_name="src/add.py", text="", credential=TEST_CREDENTIAL)

    async def test_empty_response(self):
        client = FakeGenaiClient(response=GenerateContentResponse(candidates=[Candidate(finish_reason=FinishReason.SAFETY)]))
        review_client, _ = new_review_client(client)

        with pytest.raises(MalformedResponseError, match="SAFETY"):
            _ = await review_client.review(file_name="src/add.py", text="", credential=TEST_CREDENTIAL)

    async def test_invalid_credential(self, caplog: pytest.LogCaptureFixture):
        error = GoogleGenaiClientError(
            400,
            {"error": {"code": 400, "message": "API key not valid. Please pass a valid API key.", "status": "INVALID_ARGUMENT"}},
        )
        review_client, _ = new_review_client(FakeGenaiClient(error=error))

        with caplog.at_level(logging.DEBUG, logger=TEST_LOGGER.name), pytest.raises(InvalidCredentialError, match="API key not valid"):
            _ = await review_client.review(file_name="src/add.py", text="", credential=TEST_CREDENTIAL)

        assert caplog.records
        assert TEST_CREDENTIAL not in caplog.text

    async def test_permission_denied(self):
        error = GoogleGenaiClientError(403, {"error": {"code": 403, "message": "Permission denied.", "status": "PERMISSION_DENIED"}})
        review_client, _ = new_review_client(FakeGenaiClient(error=error))

        with pytest.raises(InvalidCredentialError):
            _ = await review_client.review(file_name="src/add.py", text="", credential=TEST_CREDENTIAL)

    async def test_server_error(self):
        error = GoogleGenaiServerError(500, {"error": {"code": 500, "message": "Internal error.", "status": "INTERNAL"}})
        review_client, _ = new_review_client(FakeGenaiClient(error=error))

        with pytest.raises(RequestError, match="Internal error"):
            _ = await review_client.review(file_name="src/add.py", text="", credential=TEST_CREDENTIAL)

    async def test_transport_error(self):
        review_client, _ = new_review_client(FakeGenaiClient(error=httpx.ConnectError("Connection refused")))

        with pytest.raises(RequestError, match="Connection refused"):
            _ = await review_client.review(file_name="src/add.py", text="", credential=TEST_CREDENTIAL)

    async def test_aiohttp_transport_error(self):
        review_client, _ = new_review_client(FakeGenaiClient(error=aiohttp.ClientConnectionError("Connection reset by peer")))

        with pytest.raises(RequestError, match="Connection reset by peer"):
            _ = await review_client.review(file_name="src/add.py", text="", credential=TEST_CREDENTIAL)

    async def test_timeout(self):
        review_client, _ = new_review_client(FakeGenaiClient(error=TimeoutError()))

        with pytest.raises(RequestError):
            _ = await review_client.review(file_name="src/add.py", text="", credential=TEST_CREDENTIAL)

    async def test_reply_body_is_not_json(self):
        error = GoogleGenaiUnknownApiResponseError("Failed to parse response as JSON. Raw response: <html>Bad Gateway</html>")
        review_client, _ = new_review_client(FakeGenaiClient(error=error))

        with pytest.raises(MalformedResponseError, match="Bad Gateway"):
            _ = await review_client.review(file_name="src/add.py", text="", credential=TEST_CREDENTIAL)

    async def test_client_is_reused_per_credential(self):
        review_client, factory = new_review_client(FakeGenaiClient(response=text_response(REVIEW_JSON)))

        for file_name in ["src/a.py", "src/b.py", "src/c.py"]:
            _ = await review_client.review(file_name=file_name, text="x = 1\n", credential=TEST_CREDENTIAL)

        assert factory.credentials == [TEST_CREDENTIAL]

        _ = await review_client.review(file_name="src/a.py", text="x = 1\n", credential="another-key")

        assert factory.credentials == [TEST_CREDENTIAL, "another-key"]

    async def test_credential_is_never_logged(self, caplog: pytest.LogCaptureFixture):
        review_client, _ = new_review_client(FakeGenaiClient(response=text_response(REVIEW_JSON)))

        with caplog.at_level(logging.DEBUG, logger=TEST_LOGGER.name):
            _ = await review_client.review(file_name="src/add.py", text="x = 1\n", credential=TEST_CREDENTIAL)

        assert caplog.records
        assert TEST_CREDENTIAL not in caplog.text
