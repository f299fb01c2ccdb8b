"""Chat domain errors.

Raised by the service layer and the auth helpers; ``storefront_chat.main`` maps
them to ``{"success": false, "message": ...}`` responses using ``status_code``.
Socket handlers send the message back to the originating client instead.
"""


class ChatError(Exception):

    status_code = 400

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class ChatValidationError(ChatError):
    status_code = 400


class NotFoundError(ChatError):
    status_code = 404


class AuthenticationError(ChatError):
    status_code = 401


class PermissionDeniedError(ChatError):
    status_code = 403
