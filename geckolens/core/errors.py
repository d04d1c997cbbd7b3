from __future__ import annotations

import json
from typing import Any


class NoValidDataError(ValueError):
    """A TVL series had no usable points after cleaning."""

    def __init__(self, kind: str = "chain", name: str | None = None):
        self.kind = kind
        self.name = name
        super().__init__(f"No valid TVL data found for {self.subject}")

    @property
    def subject(self) -> str:
        return f"{self.kind} {self.name}" if self.name else self.kind


class ApiError(RuntimeError):
    api = "API"

    def __init__(self, status_code: int, path: str, error_payload: Any = None):
        super().__init__(f"{self.api} error {status_code} for {path}")
        self.status_code = status_code
        self.path = path
        self.error_payload = error_payload


class GeckoTerminalError(ApiError):
    api = "GeckoTerminal API"


class DefiLlamaError(ApiError):
    api = "DefiLlama API"


def error_payload(response) -> Any:
    """Best-effort error body from an httpx response, truncated to 2000 chars."""
    try:
        payload = response.json()
    except ValueError:
        return (response.text or "")[:2000]
    s = json.dumps(payload, ensure_ascii=False)
    return s[:2000] if len(s) > 2000 else payload
