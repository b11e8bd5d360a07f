import json
import logging

import aiohttp

from errors import FetchError, MutationError

log = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 30  # seconds per request


class NotificationAPI:
    """Client for the notification endpoints of the platform REST API.

    Use as ``async with NotificationAPI(base_url, token) as api: ...``.
    """

    def __init__(self, base_url: str, token: str | None = None, timeout: float = DEFAULT_TIMEOUT):
        self.base_url = base_url.rstrip("/")
        self.token = token
        self.timeout = aiohttp.ClientTimeout(total=timeout)
        self._session: aiohttp.ClientSession | None = None

    async def __aenter__(self):
        headers = {"Accept": "application/json"}
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        self._session = aiohttp.ClientSession(headers=headers, timeout=self.timeout)
        return self

    async def __aexit__(self, *exc):
        await self.close()

    async def close(self):
        if self._session is not None:
            await self._session.close()
            self._session = None

    @property
    def session(self) -> aiohttp.ClientSession:
        if self._session is None:
            raise RuntimeError("NotificationAPI used outside 'async with'")
        return self._session

    async def get_notifications(self, page: int = 1) -> dict:
        """Fetch one page: {"data": [...], "current_page": N, "last_page": M}."""
        url = f"{self.base_url}/notifications"
        try:
            async with self.session.get(url, params={"page": page}) as resp:
                if resp.status != 200:
                    body = await resp.text()
                    log.error("Notification fetch failed: %s %s", resp.status, body)
                    raise FetchError(f"GET {url} returned {resp.status}", status=resp.status)
                payload = await resp.json(content_type=None)
        except (aiohttp.ClientError, TimeoutError) as e:
            raise FetchError(f"GET {url} failed: {e}") from e
        except ValueError as e:
            raise FetchError(f"GET {url} returned invalid JSON") from e
        if not isinstance(payload, dict):
            raise FetchError(f"GET {url} returned {type(payload).__name__}, expected an object")
        return payload

    async def mark_as_read(self, notification_id) -> dict | None:
        return await self._mutate("POST", f"/notifications/{notification_id}/read")

    async def mark_all_as_read(self) -> dict | None:
        return await self._mutate("POST", "/notifications/read-all")

    async def delete_notification(self, notification_id) -> dict | None:
        return await self._mutate("DELETE", f"/notifications/{notification_id}")

    async def _mutate(self, method: str, path: str) -> dict | None:
        """Send a mutation. Returns the JSON body if there is one, e.g. {"message": ...}."""
        url = f"{self.base_url}{path}"
        try:
            async with self.session.request(method, url) as resp:
                body = await resp.text()
                if resp.status not in (200, 201, 202, 204):
                    log.error("%s %s failed: %s %s", method, path, resp.status, body)
                    raise MutationError(f"{method} {url} returned {resp.status}", status=resp.status)
        except (aiohttp.ClientError, TimeoutError) as e:
            raise MutationError(f"{method} {url} failed: {e}") from e
        if not body.strip():
            return None
        try:
            result = json.loads(body)
        except ValueError:
            log.debug("%s %s returned a non-JSON body", method, path)
            return None
        return result if isinstance(result, dict) else None
