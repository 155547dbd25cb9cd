"""Error value carrying a server error code/message pair."""

from typing import Any, Dict, Optional


class LiveError(Exception):
    """Raised (through a pending request) when the server answers with an error."""

    def __init__(self, error: Optional[Dict[str, Any]] = None):
        self.error: Dict[str, Any] = dict(error or {})
        self.code: str = self.error.get("code", "UnknownError")
        self.message: str = self.error.get("message", "")
        self.details: Optional[Dict[str, Any]] = self.error.get("details")
        super().__init__(f"{self.code}: {self.message}")

    @classmethod
    def timeout(cls, req_id: str, seconds: float) -> "LiveError":
        """Error used when a pending request outlives the configured timeout."""
        return cls({
            "code": "RequestTimeout",
            "message": f"No response for request {req_id} after {seconds}s",
        })
