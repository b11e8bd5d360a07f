from dataclasses import dataclass
from typing import Awaitable, Callable


@dataclass
class Notice:
    title: str
    status: str             # "success" | "error"
    duration_ms: int = 3000  # auto-dismiss after this long


Notify = Callable[[Notice], Awaitable[None]]
Navigate = Callable[[str], None]
