"""
Upstream Error Normalization
============================

Standardizes error bodies from different providers into one shape so the
message shown to the user is the provider's own wording.

- Linode: {"errors": [{"field": ..., "reason": ...}]}
- DigitalOcean: {"id": "not_found", "message": ...} (optionally under "data")
"""

from dataclasses import dataclass
from typing import Any, Optional

from .base import ProviderKind

STATUS_MESSAGES = {
    400: "Bad request - invalid parameters",
    401: "Authentication failed - invalid API token",
    403: "Access forbidden - insufficient permissions",
    404: "Resource not found",
    422: "Unprocessable entity - validation failed",
    429: "Rate limit exceeded",
    500: "Provider server error",
    502: "Bad gateway - provider service unavailable",
    503: "Service unavailable - provider is down",
    504: "Gateway timeout - provider request timed out",
}


@dataclass(frozen=True)
class UpstreamError:
    provider: str
    code: str
    message: str
    field: Optional[str] = None
    status_code: Optional[int] = None

    def __str__(self) -> str:
        return f"[{self.provider}] {self.code}: {self.message}"


def _code_from_id(identifier: str) -> str:
    return identifier.upper().replace("-", "_")


def _from_status(provider: str, status_code: Optional[int], fallback: Optional[str] = None) -> UpstreamError:
    if status_code is None:
        return UpstreamError(provider, "UNKNOWN_ERROR", fallback or "An unknown error occurred")
    return UpstreamError(
        provider,
        f"HTTP_{status_code}",
        STATUS_MESSAGES.get(status_code) or fallback or f"HTTP {status_code} error",
        status_code=status_code,
    )


def normalize_linode_error(body: Any, status_code: Optional[int] = None) -> UpstreamError:
    errors = body.get("errors") if isinstance(body, dict) else None
    if isinstance(errors, list) and errors and isinstance(errors[0], dict):
        first = errors[0]
        return UpstreamError(
            "linode",
            "VALIDATION_ERROR",
            first.get("reason") or "Validation error",
            field=first.get("field"),
            status_code=status_code,
        )
    return _from_status("linode", status_code)


def normalize_digitalocean_error(body: Any, status_code: Optional[int] = None) -> UpstreamError:
    if isinstance(body, dict):
        for candidate in (body, body.get("data")):
            if isinstance(candidate, dict) and candidate.get("id") and candidate.get("message"):
                return UpstreamError(
                    "digitalocean",
                    _code_from_id(str(candidate["id"])),
                    candidate["message"],
                    status_code=status_code,
                )

        data = body.get("data")
        if isinstance(data, dict) and data.get("errors"):
            first = data["errors"][0] if isinstance(data["errors"], list) else data["errors"]
            first = first if isinstance(first, dict) else {}
            return UpstreamError(
                "digitalocean",
                "VALIDATION_ERROR",
                first.get("message") or "Validation error",
                field=first.get("field"),
                status_code=status_code,
            )
    return _from_status("digitalocean", status_code)


def normalize_upstream_error(provider: Any, body: Any, status_code: Optional[int] = None) -> UpstreamError:
    """
    Normalize a provider error body.

    Args:
        provider: ProviderKind or provider id string
        body: Decoded JSON body (or None when it could not be decoded)
        status_code: HTTP status of the failed response

    Returns:
        UpstreamError with a stable code and the provider's message
    """
    provider_id = provider.value if isinstance(provider, ProviderKind) else str(provider)
    if provider_id == ProviderKind.LINODE.value:
        return normalize_linode_error(body, status_code)
    if provider_id == ProviderKind.DIGITALOCEAN.value:
        return normalize_digitalocean_error(body, status_code)

    message = body.get("message") if isinstance(body, dict) else None
    return _from_status(provider_id, status_code, message)
