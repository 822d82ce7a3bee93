"""
Console API Transport
=====================

Async JSON-over-HTTPS client for the console's instance endpoints.

Error envelope: non-2xx responses carry {"error": "..."}. A parseable body
without that field reads as "Unknown error"; an unparseable body or a
network failure is a transport error with a generic message.
"""

import logging
from typing import Any, Dict, Optional

import httpx

from .config import ApiConfig
from .providers.error_normalizer import normalize_upstream_error

logger = logging.getLogger(__name__)

UNKNOWN_ERROR = "Unknown error"
TRANSPORT_ERROR = "Unable to reach the server. Please try again."


class ConsoleAPIError(Exception):
    """Non-2xx response from the console API."""
    def __init__(self, message: str, status_code: Optional[int] = None, code: Optional[str] = None):
        self.message = message
        self.status_code = status_code
        self.code = code
        super().__init__(message)


class ConsoleNotFoundError(ConsoleAPIError):
    """The resource no longer exists (HTTP 404)."""
    pass


class ConsoleTransportError(ConsoleAPIError):
    """Network failure or a response body that could not be decoded."""
    def __init__(self, detail: str = "", status_code: Optional[int] = None):
        self.detail = detail
        super().__init__(TRANSPORT_ERROR, status_code=status_code)


def error_from_body(body: Any, status_code: Optional[int] = None) -> ConsoleAPIError:
    """Build the error for a decoded non-2xx body."""
    error = body.get("error") if isinstance(body, dict) else None

    if isinstance(error, str) and error.strip():
        message, code = error, None
    elif isinstance(error, dict):
        # Upstream error object relayed as-is
        upstream = normalize_upstream_error(body.get("provider") or error.get("provider") or "", error, status_code)
        message, code = upstream.message, upstream.code
    else:
        message, code = UNKNOWN_ERROR, None

    if status_code == 404:
        return ConsoleNotFoundError(message, status_code=status_code, code=code)
    return ConsoleAPIError(message, status_code=status_code, code=code)


class ConsoleClient:
    """
    Bearer-authenticated client for the /api/vps surface.

    Every method returns the decoded JSON body (an empty dict for empty
    responses) or raises ConsoleAPIError.
    """

    def __init__(
        self,
        base_url: str,
        token: str = "",
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        headers = {"Accept": "application/json"}
        if token:
            headers["Authorization"] = f"Bearer {token}"
        self._client = httpx.AsyncClient(
            base_url=base_url.rstrip("/"),
            headers=headers,
            timeout=timeout,
            transport=transport,
        )

    @classmethod
    def from_config(cls, config: ApiConfig, **kwargs) -> "ConsoleClient":
        return cls(config.base_url, config.token, config.request_timeout, **kwargs)

    async def close(self) -> None:
        await self._client.aclose()

    async def __aenter__(self) -> "ConsoleClient":
        return self

    async def __aexit__(self, *exc) -> None:
        await self.close()

    async def _request(self, method: str, path: str, data: Optional[Dict] = None) -> Dict[str, Any]:
        """Make an authenticated API request."""
        try:
            response = await self._client.request(method, path, json=data)
        except httpx.HTTPError as e:
            logger.warning(f"{method} {path} failed: {e}")
            raise ConsoleTransportError(str(e))

        if response.is_success:
            if not response.content:
                return {}
            try:
                return response.json()
            except ValueError as e:
                raise ConsoleTransportError(f"Invalid JSON from {path}: {e}", response.status_code)

        try:
            body = response.json()
        except ValueError:
            logger.warning(f"{method} {path} returned {response.status_code} with no readable body")
            raise ConsoleTransportError(f"HTTP {response.status_code}", response.status_code)

        raise error_from_body(body, response.status_code)

    # =========================================
    # INSTANCE
    # =========================================

    async def get_instance(self, instance_id: str) -> Dict[str, Any]:
        return await self._request("GET", f"/api/vps/{instance_id}")

    async def power(self, instance_id: str, action: str) -> Dict[str, Any]:
        """Boot, shut down or reboot an instance."""
        if action not in ("boot", "shutdown", "reboot"):
            raise ValueError(f"Unknown power action: {action}")
        return await self._request("POST", f"/api/vps/{instance_id}/{action}")

    async def update_hostname(self, instance_id: str, hostname: str) -> Dict[str, Any]:
        return await self._request("PUT", f"/api/vps/{instance_id}/hostname", {"hostname": hostname})

    # =========================================
    # BACKUPS
    # =========================================

    async def backup_action(self, instance_id: str, action: str, data: Optional[Dict] = None) -> Dict[str, Any]:
        """Enable, disable, snapshot or schedule backups."""
        if action not in ("enable", "disable", "snapshot", "schedule"):
            raise ValueError(f"Unknown backup action: {action}")
        return await self._request("POST", f"/api/vps/{instance_id}/backups/{action}", data or {})

    async def restore_backup(self, instance_id: str, backup_id: str, overwrite: bool = True) -> Dict[str, Any]:
        return await self._request(
            "POST",
            f"/api/vps/{instance_id}/backups/{backup_id}/restore",
            {"overwrite": overwrite},
        )

    # =========================================
    # FIREWALLS
    # =========================================

    async def attach_firewall(self, instance_id: str, firewall_id: str) -> Dict[str, Any]:
        return await self._request(
            "POST", f"/api/vps/{instance_id}/firewalls/attach", {"firewallId": firewall_id}
        )

    async def detach_firewall(self, instance_id: str, firewall_id: str, device_id: str) -> Dict[str, Any]:
        return await self._request(
            "POST",
            f"/api/vps/{instance_id}/firewalls/detach",
            {"firewallId": firewall_id, "deviceId": device_id},
        )

    # =========================================
    # NETWORKING
    # =========================================

    async def update_rdns(self, instance_id: str, address: str, rdns: Optional[str]) -> Dict[str, Any]:
        return await self._request(
            "POST", f"/api/vps/{instance_id}/networking/rdns", {"address": address, "rdns": rdns}
        )

    async def get_rdns_base_domain(self) -> Optional[str]:
        body = await self._request("GET", "/api/vps/networking/config")
        config = body.get("config") if isinstance(body, dict) else None
        if isinstance(config, dict):
            domain = config.get("rdns_base_domain")
            if isinstance(domain, str) and domain.strip():
                return domain.strip()
        return None

    # =========================================
    # CATALOG
    # =========================================

    async def get_upstream_plans(self) -> Any:
        return await self._request("GET", "/api/admin/upstream/plans")

    async def get_upstream_regions(self) -> Any:
        return await self._request("GET", "/api/admin/upstream/regions")
