import argparse
import asyncio
import json
import locale
import logging
import os
import tomllib
from pathlib import Path

from api import NotificationAPI, DEFAULT_TIMEOUT
from gallery import AttachmentBundle, build_gallery
from store import NotificationStore, DATE_FORMAT, KEEP
from views.cli import interactive, print_navigation, print_notice, render_gallery

log = logging.getLogger(__name__)


def load_config(config_path: Path | None = None) -> dict:
    config_path = config_path or Path(__file__).parent / "config.toml"
    if config_path.exists():
        return tomllib.loads(config_path.read_text())
    return {}


def use_system_locale():
    """Pick up LC_TIME from the environment so '%x' dates follow the user's locale."""
    try:
        locale.setlocale(locale.LC_TIME, "")
    except locale.Error:
        log.warning("Unsupported locale in environment, dates use the C locale")


def build_store(api, config: dict) -> NotificationStore:
    feed_config = config.get("feed", {})
    return NotificationStore(
        api,
        notify=print_notice,
        navigate=print_navigation,
        on_failure=feed_config.get("on_failure", KEEP),
        discard_stale_pages=feed_config.get("discard_stale_pages", False),
        notice_duration_ms=config.get("notices", {}).get("duration_ms", 3000),
        date_format=feed_config.get("date_format", DATE_FORMAT),
    )


async def run_feed(config: dict):
    api_config = config.get("api", {})
    base_url = api_config.get("base_url", "http://localhost:8000/api")
    token = os.environ.get("NOTICEBOARD_API_TOKEN", "")
    log.info("Connecting to %s", base_url)
    async with NotificationAPI(base_url, token or None, api_config.get("timeout", DEFAULT_TIMEOUT)) as api:
        await interactive(build_store(api, config))


def show_gallery(path: Path):
    raw = json.loads(path.read_text())
    print(render_gallery(build_gallery(AttachmentBundle.from_dict(raw))))


def main_cli():
    parser = argparse.ArgumentParser(description="Notification feed and attachment gallery")
    parser.add_argument("--config", type=Path, help="Path to config.toml")
    parser.add_argument("-v", "--verbose", action="store_true")
    sub = parser.add_subparsers(dest="command", required=True)
    sub.add_parser("feed", help="Browse notifications interactively")
    gallery_parser = sub.add_parser("gallery", help="Print an attachment bundle from a JSON file")
    gallery_parser.add_argument("file", type=Path)
    args = parser.parse_args()

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(name)s %(message)s",
    )
    use_system_locale()

    if args.command == "gallery":
        show_gallery(args.file)
        return
    asyncio.run(run_feed(load_config(args.config)))


if __name__ == "__main__":
    main_cli()
