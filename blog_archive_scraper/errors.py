from __future__ import annotations

from typing import Optional


class ImportInputError(ValueError):
    """Raised before any fetch when the import request itself is unusable."""


class DiscoveryEmptyError(ImportInputError):
    def __init__(self, seed_url: str) -> None:
        super().__init__(f"no article URLs could be discovered from {seed_url}")
        self.seed_url = seed_url


class FetchError(Exception):
    """A single fetch failed. ``reason`` is a stable code used in summaries."""

    def __init__(
        self,
        url: str,
        reason: str,
        *,
        status: Optional[int] = None,
        retryable: bool = True,
        detail: str = "",
    ) -> None:
        super().__init__(f"{reason}: {url}" + (f" ({detail})" if detail else ""))
        self.url = url
        self.reason = reason
        self.status = status
        self.retryable = retryable
        self.detail = detail

    @classmethod
    def from_status(cls, url: str, status: int) -> "FetchError":
        # 404/410 are definitive; everything else may clear up on retry
        if status in (404, 410):
            return cls(url, f"http_{status}", status=status, retryable=False)
        return cls(url, f"http_{status}", status=status, retryable=True)

    @classmethod
    def too_large(cls, url: str, size: int, limit: int) -> "FetchError":
        return cls(url, "too_large", retryable=False, detail=f"{size} > {limit} bytes")


class ExtractionShortfall(Exception):
    reason = "extraction_empty"

    def __init__(self, url: str) -> None:
        super().__init__(f"no usable title or body at {url}")
        self.url = url


class CodecError(ValueError):
    pass


class PersistenceSizeError(RuntimeError):
    def __init__(self, key: str, size: int, limit: int) -> None:
        super().__init__(
            f"record set for {key!r} is {size} bytes, over the storage limit of {limit} bytes; "
            "delete old records or import fewer items"
        )
        self.key = key
        self.size = size
        self.limit = limit
