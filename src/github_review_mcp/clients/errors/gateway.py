from enum import StrEnum

ExtraInfoType = dict[str, str | None]


class ReviewPhase(StrEnum):
    FETCH = "fetch"
    REVIEW = "review"


class ClientError(Exception):
    """A request error from the GitHub Review client."""

    def __init__(self, message: str, extra_info: ExtraInfoType | None = None):
        msg = message
        if extra_info:
            msg += " (" + ", ".join([f"{key}: {value}" for key, value in extra_info.items() if value is not None]) + ")"
        super().__init__(msg)


class GatewayError(ClientError):
    """An error reported by the repository content or review gateway.

    The orchestrator records which phase of a file review raised the error in `phase` before re-raising it."""

    phase: ReviewPhase | None = None


class RequestError(GatewayError):
    """A request error from the GitHub Review client."""

    def __init__(self, action: str, message: str | None = None, extra_info: ExtraInfoType | None = None):
        if not extra_info:
            extra_info = {}
        super().__init__(message="A request error occured.", extra_info={"action": action, "message": message, **extra_info})


class ResourceNotFoundError(RequestError):
    """A not found error from the GitHub Review client."""

    def __init__(self, action: str, resource: str | None = None, extra_info: ExtraInfoType | None = None):
        if not extra_info:
            extra_info = {}
        super().__init__(
            action=action,
            message="The resource could not be found.",
            extra_info={"resource": resource, **extra_info},
        )


class RateLimitedError(RequestError):
    """The request quota of the remote API is exhausted."""

    def __init__(self, action: str, reset_at: str | None = None):
        super().__init__(action=action, message="The request quota has been exhausted.", extra_info={"reset_at": reset_at})


class ContentDecodeError(GatewayError):
    """The remote content could not be decoded as text."""

    def __init__(self, path: str, reason: str):
        super().__init__(message="The file content could not be decoded as text.", extra_info={"path": path, "reason": reason})


class InvalidCredentialError(GatewayError):
    """The review backend rejected the access credential."""

    def __init__(self, message: str | None = None):
        super().__init__(message="The review credential was rejected.", extra_info={"message": message})


class MalformedResponseError(GatewayError):
    """The review backend replied with something that is not a review."""

    def __init__(self, file_name: str, reason: str):
        super().__init__(message="The review response could not be parsed.", extra_info={"file_name": file_name, "reason": reason})
