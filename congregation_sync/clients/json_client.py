import json
import logging
import httpx
from typing import Any, Dict, Optional
from ..config import settings
from ..errors import ApiError, DecodeError, HttpStatusError, NetworkError

logger = logging.getLogger(__name__)

# Transport failures worth another attempt
TRANSIENT_ERRORS = (httpx.TimeoutException, httpx.NetworkError, httpx.RemoteProtocolError)

class JsonClient:
    def __init__(self, client: Optional[httpx.AsyncClient] = None):
        self.client = client or httpx.AsyncClient(
            timeout=settings.REQUEST_TIMEOUT_SECONDS,
            follow_redirects=True
        )

    async def close(self):
        await self.client.aclose()

    async def get_json(self, url: str, params: Optional[Dict[str, Any]] = None) -> Any:
        """
        GET a JSON document and classify every failure.

        Raises NetworkError (retryable for timeouts / dropped connections),
        HttpStatusError for any status other than 200, DecodeError for bodies
        that are not JSON and ApiError for error payloads.
        """
        try:
            resp = await self.client.get(url, params=params)
        except TRANSIENT_ERRORS as e:
            logger.debug(f"Transient failure fetching {url}: {e!r}")
            raise NetworkError(str(e) or type(e).__name__) from e
        except httpx.TransportError as e:
            raise NetworkError(str(e) or type(e).__name__, retryable=False) from e

        logger.debug(f"GET {url} -> {resp.status_code}")

        if resp.status_code != 200:
            raise HttpStatusError(resp.status_code, self._error_message(resp))

        try:
            data = resp.json()
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            raise DecodeError(f"Failed to decode response from {url}: {e}") from e

        api_error = extract_api_error(data)
        if api_error is not None:
            raise api_error
        return data

    def _error_message(self, resp: httpx.Response) -> Optional[str]:
        try:
            err = extract_api_error(resp.json())
        except (json.JSONDecodeError, UnicodeDecodeError):
            return None
        if err is None:
            return None
        return f"HTTP Error: Status code {resp.status_code}: {err}"


def extract_api_error(data: Any) -> Optional[ApiError]:
    """
    Recognise `{error: {...}}`, `{error: "..."}` and `{message, code}` bodies.
    """
    if not isinstance(data, dict):
        return None

    error = data.get("error")
    if error:
        if isinstance(error, dict):
            message = error.get("message") or data.get("message") or "Unknown API error"
            code = error.get("code", data.get("code"))
        else:
            message = str(error)
            code = data.get("code")
        return ApiError(message, _as_int(code))

    if "message" in data and "code" in data:
        return ApiError(str(data.get("message") or "Unknown API error"), _as_int(data.get("code")))

    return None


def _as_int(value: Any) -> Optional[int]:
    try:
        return int(value)
    except (TypeError, ValueError):
        return None
