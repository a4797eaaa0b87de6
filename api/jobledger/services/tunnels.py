from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

import httpx

logger = logging.getLogger(__name__)

NGROK_API_VERSION = "2"
TUNNEL_CREDENTIAL_DESCRIPTION = "desktop-client"
TUNNEL_CREDENTIAL_ACL = ["bind:*"]


class TunnelProviderError(Exception):
    """Raised when the tunnel provider rejects a credential request."""

    def __init__(self, status_code: int, detail: str) -> None:
        super().__init__(detail)
        self.status_code = status_code
        self.detail = detail


class TunnelProviderUnavailableError(Exception):
    """Raised when the tunnel provider cannot be reached or is not configured."""


@dataclass(slots=True)
class TunnelCredential:
    token: str
    id: str


async def create_tunnel_credential(
    *,
    api_url: str,
    api_key: str | None,
    user_id: str,
    timeout_seconds: float,
    client: httpx.AsyncClient | None = None,
) -> TunnelCredential:
    if not api_key:
        raise TunnelProviderUnavailableError("tunnel provider is not configured")

    url = f"{api_url.rstrip('/')}/credentials"
    headers = {
        "Authorization": f"Bearer {api_key}",
        "Ngrok-Version": NGROK_API_VERSION,
        "Content-Type": "application/json",
    }
    payload = {
        "description": TUNNEL_CREDENTIAL_DESCRIPTION,
        "metadata": f"user_id:{user_id}",
        "acl": TUNNEL_CREDENTIAL_ACL,
    }

    try:
        if client is not None:
            response = await client.post(url, headers=headers, json=payload, timeout=timeout_seconds)
        else:
            async with httpx.AsyncClient(timeout=timeout_seconds) as owned_client:
                response = await owned_client.post(url, headers=headers, json=payload)
    except httpx.HTTPError as exc:
        logger.warning("tunnel provider request failed user_id=%s error=%s", user_id, exc)
        raise TunnelProviderUnavailableError("tunnel provider unavailable") from exc

    if response.is_error:
        logger.error(
            "tunnel provider rejected credential request user_id=%s status=%s body=%s",
            user_id,
            response.status_code,
            _safe_body(response),
        )
        raise TunnelProviderError(response.status_code, "Failed to generate ngrok token")

    body = _safe_body(response)
    token = body.get("token") if isinstance(body, dict) else None
    credential_id = body.get("id") if isinstance(body, dict) else None
    if not isinstance(token, str) or not token or not isinstance(credential_id, str) or not credential_id:
        raise TunnelProviderError(502, "tunnel provider returned an incomplete credential")

    return TunnelCredential(token=token, id=credential_id)


def _safe_body(response: httpx.Response) -> Any:
    try:
        return response.json()
    except ValueError:
        return response.text
