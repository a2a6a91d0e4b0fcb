"""HTTP helpers shared by built-in sources.

Built-in sources use urllib. Every failure is translated into a SourceError
with an explicit kind, so the retry layer never has to guess from messages.
"""

from __future__ import annotations

import json
import socket
import urllib.error
import urllib.request
from typing import Any, Optional

from ..errors import (
    FatalSourceError,
    SourceAuthError,
    SourceError,
    SourceTimeoutError,
    TransientNetworkError,
    UpstreamRateLimitError,
)
from ..rate_limit import parse_rate_limit_info

USER_AGENT = "url-risk/1.0"


def headers_to_dict(headers: Any) -> dict[str, str]:
    if headers is None:
        return {}
    try:
        items = headers.items()
    except AttributeError:
        return {}
    return {str(k): str(v) for k, v in items if k is not None}


def error_from_status(
    source: str,
    status: int,
    reason: str = "",
    headers: Optional[dict[str, str]] = None,
) -> SourceError:
    """Map an HTTP error status onto a typed source error."""
    msg = f"{source}: HTTP {status}{' ' + reason if reason else ''}"
    if status == 429:
        info = parse_rate_limit_info(source, headers or {})
        return UpstreamRateLimitError(
            f"{source} API rate limit exceeded",
            source=source,
            retry_after_seconds=info.retry_after_seconds if info else None,
        )
    if status in (401, 403):
        return SourceAuthError(msg, source=source)
    if status == 408 or status >= 500:
        return TransientNetworkError(msg, source=source)
    return FatalSourceError(msg, source=source)


def request_json(
    req: urllib.request.Request,
    *,
    source: str,
    timeout: float,
    not_found_ok: bool = False,
) -> Optional[dict[str, Any]]:
    """Perform req and decode a JSON object body, raising SourceError on failure.

    With not_found_ok, a 404 returns None instead of raising.
    """
    req.add_header("User-Agent", USER_AGENT)
    req.add_header("Accept", "application/json")
    try:
        with urllib.request.urlopen(req, timeout=timeout) as response:
            body = response.read().decode("utf-8")
    except urllib.error.HTTPError as e:
        if e.code == 404 and not_found_ok:
            return None
        raise error_from_status(source, e.code, str(e.reason or ""), headers_to_dict(e.headers)) from e
    except (socket.timeout, TimeoutError) as e:
        raise SourceTimeoutError(f"{source}: request timed out", source=source) from e
    except urllib.error.URLError as e:
        if isinstance(e.reason, (socket.timeout, TimeoutError)):
            raise SourceTimeoutError(f"{source}: request timed out", source=source) from e
        raise TransientNetworkError(f"{source}: {e.reason}", source=source) from e
    except OSError as e:
        raise TransientNetworkError(f"{source}: {e}", source=source) from e

    if not body.strip():
        return {}
    try:
        data = json.loads(body)
    except ValueError as e:
        raise FatalSourceError(f"{source}: invalid JSON response", source=source) from e
    if not isinstance(data, dict):
        raise FatalSourceError(f"{source}: unexpected response shape", source=source)
    return data
