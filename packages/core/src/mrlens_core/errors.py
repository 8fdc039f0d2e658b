"""Exception hierarchy for the review pipeline.

Transports (the GitLab client, the model providers) raise RemoteCallError to
report an HTTP outcome. call_with_retry turns those raw signals into the
classified errors below, which are what callers are expected to catch.
"""

from __future__ import annotations


class MRLensError(Exception):
    """Base class for every error raised by mrlens."""


class RemoteCallError(MRLensError):
    """A remote call answered with an HTTP error status.

    retry_after is the server's delay hint in seconds, when it sent one.
    source names the service that answered ("gitlab", "openai", ...).
    """

    def __init__(self, status: int, payload=None, retry_after: float | None = None, source: str | None = None):
        super().__init__(f"Remote call failed with status {status}: {payload}")
        self.status = status
        self.payload = payload
        self.retry_after = retry_after
        self.source = source


class ClientError(MRLensError):
    """4xx response other than 429. Never retried."""

    def __init__(self, status: int, payload=None, source: str | None = None):
        super().__init__(f"Client error {status}: {payload}")
        self.status = status
        self.payload = payload
        self.source = source


class ExhaustedRetries(MRLensError):
    """A remote call kept failing until the attempt budget ran out."""

    def __init__(self, message: str, attempts: int):
        super().__init__(message)
        self.attempts = attempts


class RateLimited(ExhaustedRetries):
    """Every attempt was answered with 429 Too Many Requests."""


class TransientRemoteFailure(ExhaustedRetries):
    """Every attempt was answered with a 5xx status."""

    def __init__(self, message: str, attempts: int, status: int, payload=None):
        super().__init__(message, attempts)
        self.status = status
        self.payload = payload


class ModelCallError(MRLensError):
    """The model call for a chunk failed or returned output we cannot use."""

    def __init__(self, message: str, chunk_index: int | None = None):
        super().__init__(message)
        self.chunk_index = chunk_index
