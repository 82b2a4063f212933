from __future__ import annotations

import argparse
import asyncio
import logging
from typing import Optional

from livesync.errors import AuthorizationError, TransportError
from livesync.identity import Credentials
from livesync.notifications import JsonFileStorage, NotificationDispatcher, describe_change, describe_status
from livesync.records import ChangeEvent, Collection, parse_collection
from livesync.synchronizer import (
    PERSISTENT_FAILURE_THRESHOLD,
    FeedStatus,
    LiveStateSynchronizer,
    ReconnectPolicy,
)

from .client import HttpGateway, HttpIdentityProvider, build_client
from .config import WatchSettings
from .feed import WebSocketChangeFeed
from .logging import configure_logging

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="FarmWatch - watch agent")
    parser.add_argument("--print-config", action="store_true", help="Print resolved configuration and exit.")
    parser.add_argument("--watch", action="store_true", help="Follow live collections and record alerts.")
    parser.add_argument(
        "--duration",
        type=float,
        default=None,
        help="With --watch: stop after this many seconds (default: run until interrupted).",
    )
    parser.add_argument("--notifications", action="store_true", help="Print the local notification log.")
    parser.add_argument(
        "--clear-notifications",
        nargs="?",
        const="all",
        choices=["all", "fire", "security", "system"],
        metavar="TYPE",
        help="Clear the notification log, or only entries of TYPE (fire, security, system).",
    )
    return parser


def print_notifications(dispatcher: NotificationDispatcher) -> None:
    if not len(dispatcher):
        print("No notifications.")
        return
    for entry in dispatcher.history:
        severity = f"/{entry.severity}" if entry.severity else ""
        print(f"{entry.timestamp.isoformat()} [{entry.type}{severity}] {entry.title}: {entry.message}")


async def watch(cfg: WatchSettings, dispatcher: NotificationDispatcher, duration: Optional[float] = None) -> None:
    """
    Sign in, load every configured collection and keep it live until the
    duration elapses (or forever). Changes and lasting outages become
    notifications.
    """
    collections = [parse_collection(name) for name in cfg.collections]

    async with build_client(cfg.server_base_url, timeout=cfg.request_timeout_sec) as client:
        identity = HttpIdentityProvider(client)
        await identity.sign_in(Credentials(email=cfg.email, password=cfg.password))

        feed = WebSocketChangeFeed(cfg.server_base_url, lambda: identity.token, cfg.request_timeout_sec)
        gateway = HttpGateway(client, identity, feed)

        def on_event(event: ChangeEvent) -> None:
            entry = describe_change(event)
            if entry is not None:
                stored = dispatcher.record(entry)
                logger.info("%s: %s", stored.title, stored.message)

        def on_status(collection: Collection, status: FeedStatus) -> None:
            # Alert once when an outage becomes persistent, and once when it ends.
            if status.connected:
                if collection not in outages:
                    return
                outages.discard(collection)
            elif status.retry_count == PERSISTENT_FAILURE_THRESHOLD:
                outages.add(collection)
            else:
                return
            entry = describe_status(collection, status.connected, status.retry_count, status.error)
            if entry is not None:
                dispatcher.record(entry)

        outages: set[Collection] = set()
        synchronizer = LiveStateSynchronizer(
            gateway,
            feed,
            reconnect=ReconnectPolicy(
                initial_delay=cfg.reconnect_initial_delay_sec,
                max_delay=cfg.reconnect_max_delay_sec,
            ),
            on_status=on_status,
            on_event=on_event,
        )
        try:
            for collection in collections:
                rows = await synchronizer.load(collection)
                logger.info("Loaded %d %s", len(rows), collection.value)
                synchronizer.subscribe(
                    collection,
                    lambda rows, name=collection.value: logger.info("%s: %d rows", name, len(rows)),
                )

            if duration is not None:
                await asyncio.sleep(duration)
            else:
                await asyncio.Event().wait()
        finally:
            await synchronizer.close()
            await identity.sign_out()


def run(argv: list[str] | None = None, cfg: WatchSettings | None = None) -> int:
    """
    Watch agent entrypoint.
    """
    # Load settings from environment / .env
    cfg = cfg or WatchSettings()
    try:
        args = build_parser().parse_args(argv)

        # Setup logging using configured level
        configure_logging(cfg.log_level)

        logger.info(
            "Resolved config: server=%s collections=%s store=%s",
            cfg.server_base_url, ",".join(cfg.collections), cfg.notification_store_path,
        )

        if args.print_config:
            print(cfg.model_dump(exclude={"password"}))
            return 0

        dispatcher = NotificationDispatcher(JsonFileStorage(cfg.notification_store_path))

        if args.clear_notifications:
            if args.clear_notifications == "all":
                dispatcher.clear()
            else:
                dispatcher.clear_by_type(args.clear_notifications)
            logger.info("Cleared %s notifications (%d left)", args.clear_notifications, len(dispatcher))
            return 0

        if args.notifications:
            print_notifications(dispatcher)
            return 0

        if args.watch:
            if not cfg.email or not cfg.password:
                logger.error("WATCH_EMAIL and WATCH_PASSWORD must be set to watch")
                return 1
            try:
                asyncio.run(watch(cfg, dispatcher, args.duration))
            except KeyboardInterrupt:
                logger.info("Interrupted, stopping")
            except AuthorizationError as e:
                logger.error("Sign-in rejected: %s", e)
                return 1
            except TransportError as e:
                logger.error("FarmWatch server unavailable: %s", e)
                return 1
            return 0

        logger.info("Nothing to do. Use --print-config, --watch or --notifications.")
        return 0

    except Exception:
        # Log unexpected exceptions so the agent is diagnosable.
        logger.exception("Watch agent crashed due to an unexpected error")
        if cfg.log_level.upper() == "DEBUG":
            raise
        return 1


if __name__ == "__main__":
    raise SystemExit(run())
