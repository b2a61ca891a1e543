"""Exceptions raised by request handling."""


class BridgeError(Exception):
    """Base error; ``status`` is the HTTP status the app answers with."""
    status = 500

    def __init__(self, message: str, status: int | None = None):
        super().__init__(message)
        self.message = message
        if status is not None:
            self.status = status

    def to_dict(self) -> dict:
        return {"ok": False, "error": self.message}


class BadRequest(BridgeError):
    """Missing or invalid request parameters."""
    status = 400
