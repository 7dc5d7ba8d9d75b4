"""
Webhook URL Resolver
Maps (tenant, call, action) to the externally reachable callback URL and back
"""
import re
from typing import Optional
from urllib.parse import parse_qs, quote, urlsplit

from pydantic import BaseModel

from callpilot.core.exceptions import WebhookURLError

# URL-unreserved characters only, so ids never need escaping
_SAFE_SEGMENT = re.compile(r"[A-Za-z0-9._~-]+")

TENANT_ENDPOINTS = frozenset({"inbound", "outbound", "status", "analytics"})


class WebhookTarget(BaseModel):
    """Parsed webhook URL"""
    tenant_id: str
    call_id: Optional[str] = None
    action: Optional[str] = None
    endpoint: Optional[str] = None


def _check_segment(kind: str, value: Optional[str]) -> str:
    if not value or not _SAFE_SEGMENT.fullmatch(value) or value in (".", ".."):
        raise WebhookURLError(f"Invalid {kind}: {value!r}")
    return value


class WebhookURLResolver:
    """
    Builds and parses voice webhook URLs.

    Call URLs:     {base}{prefix}/voice/{tenant_id}/calls/{call_id}[?action=...]
    Endpoint URLs: {base}{prefix}/voice/{tenant_id}/{inbound|outbound|status|analytics}
    """

    def __init__(self, base_url: str, api_prefix: str = "/api/v1"):
        parts = urlsplit(base_url)
        if parts.scheme not in ("http", "https") or not parts.netloc:
            raise WebhookURLError(f"Base URL must be absolute http(s): {base_url!r}")
        self._base_url = base_url.rstrip("/")
        self._root_path = parts.path.rstrip("/") + "/" + api_prefix.strip("/")
        self._root_path = self._root_path.rstrip("/") + "/voice"

    @property
    def base_url(self) -> str:
        return self._base_url

    def _voice_root(self) -> str:
        base = urlsplit(self._base_url)
        return f"{base.scheme}://{base.netloc}{self._root_path}"

    def resolve(self, tenant_id: str, call_id: str, action: Optional[str] = None) -> str:
        """URL for mid-call webhooks of one call."""
        tenant_id = _check_segment("tenant id", tenant_id)
        call_id = _check_segment("call id", call_id)
        url = f"{self._voice_root()}/{tenant_id}/calls/{call_id}"
        if action is not None:
            url += f"?action={quote(_check_segment('action', action), safe='')}"
        return url

    def endpoint_url(self, tenant_id: str, endpoint: str) -> str:
        """URL for a tenant-level endpoint such as inbound or status."""
        tenant_id = _check_segment("tenant id", tenant_id)
        if endpoint not in TENANT_ENDPOINTS:
            raise WebhookURLError(f"Unknown endpoint: {endpoint!r}")
        return f"{self._voice_root()}/{tenant_id}/{endpoint}"

    def recording_url(self, tenant_id: str, call_id: str) -> str:
        return f"{self.resolve(tenant_id, call_id)}/recording"

    def audio_url(self, tenant_id: str, call_id: str, clip_id: str) -> str:
        return f"{self.resolve(tenant_id, call_id)}/audio/{_check_segment('clip id', clip_id)}"

    def parse(self, url: str) -> WebhookTarget:
        """
        Inverse of resolve() and endpoint_url().

        Raises:
            WebhookURLError: For any URL not shaped like a webhook URL of this service
        """
        if not isinstance(url, str) or not url:
            raise WebhookURLError("URL must be a non-empty string")

        parts = urlsplit(url)
        if parts.fragment:
            raise WebhookURLError("Webhook URLs carry no fragment")

        root = self._root_path + "/"
        if not parts.path.startswith(root):
            raise WebhookURLError(f"Not a voice webhook path: {parts.path!r}")

        segments = parts.path[len(root):].split("/")
        action = self._parse_action(parts.query)

        if len(segments) == 3 and segments[1] == "calls":
            return WebhookTarget(
                tenant_id=_check_segment("tenant id", segments[0]),
                call_id=_check_segment("call id", segments[2]),
                action=action,
            )

        if len(segments) == 2 and segments[1] in TENANT_ENDPOINTS:
            if action is not None:
                raise WebhookURLError("Endpoint URLs take no action")
            return WebhookTarget(
                tenant_id=_check_segment("tenant id", segments[0]),
                endpoint=segments[1],
            )

        raise WebhookURLError(f"Unrecognized webhook path: {parts.path!r}")

    @staticmethod
    def _parse_action(query: str) -> Optional[str]:
        if not query:
            return None
        try:
            params = parse_qs(query, keep_blank_values=True, strict_parsing=True)
        except ValueError:
            raise WebhookURLError(f"Malformed query string: {query!r}")

        unknown = set(params) - {"action"}
        if unknown:
            raise WebhookURLError(f"Unexpected query parameters: {', '.join(sorted(unknown))}")
        values = params.get("action", [])
        if len(values) != 1:
            raise WebhookURLError("Expected exactly one action parameter")
        return _check_segment("action", values[0])
