import asyncio
import sys

from gallery import Gallery, count_label, describe
from store import NotificationStore
from views import Notice

HELP = (
    "commands: next | prev | page N | open N | read N | delete N | readall | reload | quit\n"
    "N is the position shown in the list"
)


async def print_notice(notice: Notice):
    print(f"\n[{notice.status}] {notice.title}\n")


def print_navigation(path: str):
    print(f"-> {path}")


def render_feed(store: NotificationStore) -> str:
    page = store.page
    header = "Notifications"
    if store.unread_count:
        header += f" ({store.unread_count} new)"
    lines = [header]
    if page.loading:
        lines.append("Loading notifications...")
    elif page.error:
        lines.append(page.error)
    elif not store.notifications:
        lines.append("No notifications. You're all caught up!")
    else:
        for pos, n in enumerate(store.notifications, 1):
            marker = " " if n.is_read else "*"
            lines.append(f"{pos:>3} {marker} {n.user}: {n.content}  ({n.time})")
    if page.total_pages > 1:
        lines.append(f"Page {page.current_page} of {page.total_pages}")
    return "\n".join(lines)


def render_gallery(gallery: Gallery) -> str:
    if gallery.empty:
        return "No attachments."
    header = "Attachments:"
    if gallery.has_mixed:
        header += " [mixed content] " + ", ".join(
            count_label(name, n) for name, n in gallery.counts.items() if n
        )
    lines = [header]
    if gallery.layout.kind == "single":
        lines.append(describe(gallery.items[0]))
    else:
        cols = gallery.layout.columns
        for start in range(0, len(gallery.items), cols):
            row = gallery.items[start:start + cols]
            lines.append(" | ".join(describe(item) for item in row))
    return "\n".join(lines)


def _pick(store: NotificationStore, arg: str):
    try:
        pos = int(arg)
    except ValueError:
        return None
    if 1 <= pos <= len(store.notifications):
        return store.notifications[pos - 1]
    return None


async def handle_command(store: NotificationStore, line: str) -> bool:
    """Run one command line against the store. Returns False when the user quits."""
    parts = line.strip().split()
    if not parts:
        return True
    cmd, args = parts[0].lower(), parts[1:]

    if cmd in ("exit", "quit"):
        return False
    if cmd == "next":
        await store.change_page(store.page.current_page + 1)
    elif cmd == "prev":
        await store.change_page(store.page.current_page - 1)
    elif cmd == "page" and args and args[0].isdigit():
        await store.change_page(int(args[0]))
    elif cmd == "reload":
        await store.load(store.page.current_page)
    elif cmd == "readall":
        if store.can_mark_all:
            await store.mark_all_as_read()
        else:
            print("Nothing unread.")
    elif cmd in ("open", "read", "delete") and args:
        notification = _pick(store, args[0])
        if notification is None:
            print(f"No notification at position {args[0]}")
            return True
        if cmd == "open":
            await store.handle_click(notification)
        elif cmd == "read":
            await store.mark_as_read(notification.id)
        else:
            await store.delete_notification(notification.id)
    else:
        print(HELP)
        return True
    print(render_feed(store))
    return True


async def interactive(store: NotificationStore):
    loop = asyncio.get_event_loop()

    await store.load(store.page.current_page)
    print(render_feed(store))

    if not sys.stdin.isatty():
        # Pipe mode: one command per line
        text = await loop.run_in_executor(None, sys.stdin.read)
        for line in text.splitlines():
            if not await handle_command(store, line):
                break
        return

    while True:
        try:
            line = await loop.run_in_executor(None, lambda: input("notifications> "))
        except (EOFError, KeyboardInterrupt):
            break
        if not await handle_command(store, line):
            break
