"""Notification feed state: one page of notifications plus optimistic mutations.

Every mutation changes local state before its first ``await``, so the view
never waits on the network. Failed calls are reported through notices; with
``on_failure="keep"`` the optimistic state stays as it is.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any

from yarl import URL

from errors import LinkError
from views import Navigate, Notice, Notify

log = logging.getLogger(__name__)

DATE_FORMAT = "%x"
LOAD_ERROR = "Failed to load notifications"

KEEP = "keep"
ROLLBACK = "rollback"
FAILURE_POLICIES = (KEEP, ROLLBACK)

MINUTE = 60
HOUR = 60 * MINUTE
DAY = 24 * HOUR
WEEK = 7 * DAY


def _to_datetime(timestamp) -> datetime:
    """ISO-8601 string, datetime, or epoch milliseconds (JavaScript's unit)."""
    if isinstance(timestamp, datetime):
        dt = timestamp
    elif isinstance(timestamp, (int, float)):
        return datetime.fromtimestamp(timestamp / 1000, timezone.utc)
    else:
        dt = datetime.fromisoformat(str(timestamp))
    if dt.tzinfo is None:
        dt = dt.astimezone()  # naive means local time
    return dt


def format_time(timestamp, now: datetime | None = None, date_format: str = DATE_FORMAT) -> str:
    """Relative label like '45s ago' or '3d ago'; a calendar date after a week."""
    if not timestamp:
        return ""
    try:
        then = _to_datetime(timestamp)
    except (ValueError, TypeError, OverflowError, OSError):
        return str(timestamp)
    now = now or datetime.now(timezone.utc)
    if now.tzinfo is None:
        now = now.astimezone()
    diff = max((now - then).total_seconds(), 0)
    if diff < MINUTE:
        return f"{int(diff)}s ago"
    if diff < HOUR:
        return f"{int(diff // MINUTE)}m ago"
    if diff < DAY:
        return f"{int(diff // HOUR)}h ago"
    if diff < WEEK:
        return f"{int(diff // DAY)}d ago"
    return then.astimezone().strftime(date_format)


def extract_path(url) -> str:
    """Path part of an absolute notification link, e.g. '/posts/12'."""
    try:
        parsed = URL(url)
    except (TypeError, ValueError) as e:
        raise LinkError(url) from e
    if not parsed.scheme or not parsed.host:
        raise LinkError(url)
    return parsed.raw_path or "/"


@dataclass
class Notification:
    id: Any
    user: str = "System"
    avatar: str | None = None
    content: str = ""
    is_read: bool = False
    url: str | None = None
    created_at: Any = None
    date_format: str = field(default=DATE_FORMAT, repr=False, compare=False)

    @property
    def time(self) -> str:
        # Recomputed on every access so labels age between renders
        return format_time(self.created_at, date_format=self.date_format)


def normalize(raw: dict, date_format: str = DATE_FORMAT) -> Notification:
    data = raw.get("data")
    message = data.get("message") if isinstance(data, dict) else None
    return Notification(
        id=raw.get("id"),
        user=raw.get("sender_name") or "System",
        avatar=raw.get("sender_avatar"),
        content=message or "",
        is_read=bool(raw.get("read")),
        url=raw.get("url"),
        created_at=raw.get("created_at"),
        date_format=date_format,
    )


class Status(Enum):
    IDLE = "idle"
    LOADING = "loading"
    LOADED = "loaded"
    FAILED = "failed"


@dataclass
class PageState:
    current_page: int = 1
    total_pages: int = 1
    loading: bool = False
    error: str | None = None


def _server_message(response) -> str | None:
    if isinstance(response, dict):
        return response.get("message") or None
    return None


class NotificationStore:
    """Owns the notification list and page counters; all changes go through its methods."""

    def __init__(
        self,
        api,
        notify: Notify,
        navigate: Navigate,
        *,
        on_failure: str = KEEP,
        discard_stale_pages: bool = False,
        notice_duration_ms: int = 3000,
        date_format: str = DATE_FORMAT,
    ):
        if on_failure not in FAILURE_POLICIES:
            raise ValueError(f"on_failure must be one of {FAILURE_POLICIES}, got {on_failure!r}")
        self.api = api
        self.notify = notify
        self.navigate = navigate
        self.on_failure = on_failure
        self.discard_stale_pages = discard_stale_pages
        self.notice_duration_ms = notice_duration_ms
        self.date_format = date_format

        self.notifications: list[Notification] = []
        self.page = PageState()
        self.status = Status.IDLE
        self._load_seq = 0
        self._page_version = 0  # bumped each time a loaded page replaces the list

    @property
    def unread_count(self) -> int:
        return sum(1 for n in self.notifications if not n.is_read)

    @property
    def can_mark_all(self) -> bool:
        return self.unread_count > 0

    @property
    def has_previous(self) -> bool:
        return self.page.current_page > 1

    @property
    def has_next(self) -> bool:
        return self.page.current_page < self.page.total_pages

    def _is_stale(self, seq: int) -> bool:
        return self.discard_stale_pages and seq != self._load_seq

    async def load(self, page: int = 1) -> bool:
        """Fetch a page and replace the list. On failure the previous list is kept."""
        self._load_seq += 1
        seq = self._load_seq
        self.status = Status.LOADING
        self.page.loading = True
        self.page.error = None
        try:
            payload = await self.api.get_notifications(page)
            if self._is_stale(seq):
                log.warning("Dropping page %s response, a newer request is in flight", page)
                return False
            self._apply_page(payload)
            self.status = Status.LOADED
            log.info("Loaded page %s/%s (%s notifications)",
                     self.page.current_page, self.page.total_pages, len(self.notifications))
            return True
        except Exception:
            if self._is_stale(seq):
                log.warning("Ignoring failed page %s request, a newer one superseded it", page)
                return False
            log.exception("Failed to load notifications page %s", page)
            self.page.error = LOAD_ERROR
            self.status = Status.FAILED
            return False
        finally:
            if not self._is_stale(seq):
                self.page.loading = False

    def _apply_page(self, payload: dict):
        # Parse everything first so a bad payload leaves the current page intact
        records = payload.get("data") or []
        notifications = [normalize(r, self.date_format) for r in records]
        current = max(int(payload.get("current_page") or 1), 1)
        total = max(int(payload.get("last_page") or 1), 1)
        if current > total:
            log.warning("Server reported page %s of %s", current, total)
            total = current
        self.notifications = notifications
        self.page.current_page = current
        self.page.total_pages = total
        self._page_version += 1

    def _can_roll_back(self, page_version: int, action: str) -> bool:
        if self.on_failure != ROLLBACK:
            return False
        if page_version != self._page_version:
            log.warning("Not rolling back %s, the page was reloaded meanwhile", action)
            return False
        return True

    async def change_page(self, page: int) -> bool:
        """Switch to ``page`` and load it. Out-of-range or unchanged pages do nothing."""
        if page < 1 or page > self.page.total_pages or page == self.page.current_page:
            log.debug("Ignoring page change to %s (current %s of %s)",
                      page, self.page.current_page, self.page.total_pages)
            return False
        self.page.current_page = page
        await self.load(page)
        return True

    def _flip_read(self, notification_id) -> list[Notification]:
        flipped = [n for n in self.notifications if n.id == notification_id and not n.is_read]
        for n in flipped:
            n.is_read = True
        return flipped

    async def _commit_read(self, notification_id, flipped: list[Notification], page_version: int):
        try:
            await self.api.mark_as_read(notification_id)
        except Exception:
            log.warning("Marking notification %s as read failed", notification_id, exc_info=True)
            if self._can_roll_back(page_version, f"read flag of {notification_id}"):
                for n in flipped:
                    n.is_read = False

    async def mark_as_read(self, notification_id):
        flipped = self._flip_read(notification_id)
        await self._commit_read(notification_id, flipped, self._page_version)

    async def mark_all_as_read(self):
        page_version = self._page_version
        flipped = [n for n in self.notifications if not n.is_read]
        for n in flipped:
            n.is_read = True
        try:
            response = await self.api.mark_all_as_read()
        except Exception:
            log.warning("Marking all notifications as read failed", exc_info=True)
            if self._can_roll_back(page_version, "mark all as read"):
                for n in flipped:
                    n.is_read = False
            await self._notice("Failed to mark all as read", "error")
            return
        await self._notice(_server_message(response) or "All notifications marked as read", "success")

    async def delete_notification(self, notification_id):
        page_version = self._page_version
        removed = [(i, n) for i, n in enumerate(self.notifications) if n.id == notification_id]
        self.notifications = [n for n in self.notifications if n.id != notification_id]
        try:
            response = await self.api.delete_notification(notification_id)
        except Exception:
            log.exception("Failed to delete notification %s", notification_id)
            if self._can_roll_back(page_version, f"delete of {notification_id}"):
                for index, n in removed:
                    self.notifications.insert(index, n)
            await self._notice("Failed to delete notification", "error")
            return
        await self._notice(_server_message(response) or "Notification deleted", "success")

    async def handle_click(self, notification: Notification):
        """Mark an unread notification read and follow its link, if any."""
        page_version = self._page_version
        was_unread = not notification.is_read
        flipped = self._flip_read(notification.id) if was_unread else []
        if was_unread and not notification.is_read:
            notification.is_read = True
            flipped.append(notification)

        if notification.url:
            try:
                path = extract_path(notification.url)
            except LinkError as e:
                log.error("%s", e)
                await self._notice("Invalid notification link", "error")
            else:
                self.navigate(path)

        if was_unread:
            await self._commit_read(notification.id, flipped, page_version)

    async def _notice(self, title: str, status: str):
        try:
            await self.notify(Notice(title=title, status=status, duration_ms=self.notice_duration_ms))
        except Exception:
            log.exception("Error delivering notice %r", title)
