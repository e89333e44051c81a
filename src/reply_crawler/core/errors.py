"""Error types shared by the crawl workers and the API."""


class StatusNotFound(LookupError):
    """Raised when a status id has no local row."""

    def __init__(self, status_id: int):
        super().__init__(f"Status not found: {status_id}")
        self.status_id = status_id


class UnexpectedResponseError(RuntimeError):
    """A remote resource could not be retrieved in a usable form."""

    def __init__(self, uri: str, status_code: int | None = None, detail: str = ""):
        message = f"Unexpected response for {uri}"
        if status_code is not None:
            message += f" (HTTP {status_code})"
        if detail:
            message += f": {detail}"
        super().__init__(message)
        self.uri = uri
        self.status_code = status_code
