"""Request outcome type shared by every backend adapter."""

from __future__ import annotations

from dataclasses import dataclass

from tracefetch.exceptions import RequestError


@dataclass(frozen=True)
class Outcome:
    """Either the response body text or the reason the request failed."""

    text: str | None = None
    error: RequestError | None = None

    @classmethod
    def success(cls, text: str) -> Outcome:
        return cls(text=text)

    @classmethod
    def failure(cls, error: RequestError) -> Outcome:
        return cls(error=error)

    @property
    def ok(self) -> bool:
        return self.error is None

    def describe(self) -> str:
        """Return the body text, or ``<ErrorType>: <reason>`` on failure."""
        if self.error is not None:
            return f"{type(self.error).__name__}: {self.error.reason}"
        return self.text or ""
