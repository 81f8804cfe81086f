"""Protocol-level error taxonomy."""

from __future__ import annotations

from typing import Dict, Optional

ERROR_CODES: Dict[str, int] = {
    "invalid_request": 400,
    "unauthorized": 401,
    "forbidden": 403,
    "insufficient_scope": 403,
    "not_found": 404,
    "not_implemented": 501,
    "server_error": 500,
}


class MicrosubError(Exception):
    """Base class for errors that map to an HTTP status and error code."""

    error = "invalid_request"
    default_description = "The request is missing a required parameter or is otherwise invalid."

    def __init__(self, description: Optional[str] = None) -> None:
        self.description = description or self.default_description
        super().__init__(self.description)

    @property
    def status(self) -> int:
        return ERROR_CODES.get(self.error, 400)

    def to_dict(self) -> Dict[str, str]:
        return {"error": self.error, "error_description": self.description}


class InvalidRequest(MicrosubError):
    error = "invalid_request"


class Unauthorized(MicrosubError):
    error = "unauthorized"
    default_description = "The request lacks valid authentication credentials."


class Forbidden(MicrosubError):
    error = "forbidden"
    default_description = (
        "The authenticated user does not have permission to perform this action."
    )


class InsufficientScope(MicrosubError):
    error = "insufficient_scope"
    default_description = "The access token does not have the required scope."


class NotFound(MicrosubError):
    error = "not_found"
    default_description = "The requested resource was not found."


class NotImplementedAction(MicrosubError):
    error = "not_implemented"
    default_description = "This action is not implemented by the server."


class ServerError(MicrosubError):
    error = "server_error"
    default_description = "An internal server error occurred."
