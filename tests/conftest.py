import asyncio

import pytest

from errors import FetchError, MutationError
from store import NotificationStore


def make_record(id, read=False, message=None, sender=None, url=None, created_at=None):
    record = {"id": id, "read": read, "created_at": created_at}
    if message is not None:
        record["data"] = {"message": message}
    if sender is not None:
        record["sender_name"] = sender
    if url is not None:
        record["url"] = url
    return record


def make_page(records, current_page=1, last_page=1):
    return {"data": records, "current_page": current_page, "last_page": last_page}


class FakeAPI:
    """In-memory stand-in for NotificationAPI.

    ``fail`` names the calls that raise. ``gates`` maps a call name (or a
    ("get", page) pair) to an asyncio.Event the call waits on before answering.
    """

    def __init__(self, pages=None, fail=(), responses=None):
        self.pages = pages or {}
        self.fail = set(fail)
        self.responses = responses or {}
        self.gates: dict = {}
        self.calls: list[tuple] = []

    async def _wait(self, *keys):
        for key in keys:
            gate = self.gates.get(key)
            if gate is not None:
                await gate.wait()

    async def get_notifications(self, page=1):
        self.calls.append(("get", page))
        await self._wait("get", ("get", page))
        if "get" in self.fail:
            raise FetchError("server unavailable", status=503)
        return self.pages[page]

    async def _mutation(self, name, *args):
        self.calls.append((name, *args))
        await self._wait(name)
        if name in self.fail:
            raise MutationError(f"{name} rejected", status=500)
        return self.responses.get(name)

    async def mark_as_read(self, notification_id):
        return await self._mutation("mark_as_read", notification_id)

    async def mark_all_as_read(self):
        return await self._mutation("mark_all_as_read")

    async def delete_notification(self, notification_id):
        return await self._mutation("delete_notification", notification_id)


@pytest.fixture
def notices():
    return []


@pytest.fixture
def navigations():
    return []


@pytest.fixture
def make_store(notices, navigations):
    def _make(api, **kwargs):
        async def notify(notice):
            notices.append(notice)

        return NotificationStore(api, notify=notify, navigate=navigations.append, **kwargs)

    return _make


@pytest.fixture
def three_unread():
    return FakeAPI(pages={
        1: make_page([
            make_record(1, message="New comment", sender="Ana", url="https://app.example.com/posts/7"),
            make_record(2, message="Quiz graded"),
            make_record(3, read=True, message="Welcome"),
            make_record(4, message="Study group invite", url="not a link"),
        ], current_page=1, last_page=3),
        2: make_page([make_record(10, message="Page two")], current_page=2, last_page=3),
        3: make_page([make_record(20, message="Page three")], current_page=3, last_page=3),
    })


async def settle():
    """Let pending tasks run up to their next await."""
    for _ in range(5):
        await asyncio.sleep(0)
