from __future__ import annotations

import html
import re
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from pathlib import Path

import anyio

from .errors import ServiceError
from .logging import get_logger
from .notifier import Notifier
from .router import Router
from .services import Recognizer, Storage, Transport
from .subscription import CancelToken, Subscription, Subscriptions
from .telegram.client import PARSE_MODE_HTML, BotClient
from .telegram.types import TelegramIncomingMessage

logger = get_logger(__name__)

_PLATE_LETTERS = "A-ZА-ЯІЇЄҐ"
PLATE_RE = re.compile(
    rf"^\s*[{_PLATE_LETTERS}]{{2}}\s?\d{{4}}\s?[{_PLATE_LETTERS}]{{2}}\s*$",
    re.IGNORECASE,
)
MAX_LAST_IDS = 100
MAX_RECOGNIZED_PLATES = 3

USAGE = (
    "Send me a number plate (e.g. AA1234BB) or a photo of a car.\n"
    "/follow key=value ... to get notified about new registrations\n"
    "/stop to stop notifications\n"
    "/status to see the active subscription"
)


class FollowParamsError(ValueError):
    pass


def normalize_plate(text: str) -> str:
    return re.sub(r"\s+", "", text).upper()


def parse_follow_params(text: str) -> dict[str, str]:
    """Parse ``/follow key=value key2=value2`` into a params mapping."""
    parts = text.split()
    params: dict[str, str] = {}
    for part in parts[1:]:
        key, sep, value = part.partition("=")
        key = key.strip().lower()
        value = value.strip()
        if not sep or not key or not value:
            raise FollowParamsError(f"expected key=value, got {part!r}")
        params[key] = value
    if not params:
        raise FollowParamsError("at least one key=value filter is required")
    return params


def format_params(params: Mapping[str, str]) -> str:
    return ", ".join(f"{key}={value}" for key, value in sorted(params.items()))


def format_transport(item: Transport) -> str:
    lines = [f"<b>{html.escape(item.number)}</b> {html.escape(item.title)}"]
    details = [
        ("year", str(item.year) if item.year is not None else None),
        ("color", item.color),
        ("kind", item.kind),
        ("date", item.date),
        ("registration", item.registration),
    ]
    for label, value in details:
        if value:
            lines.append(f"{label}: {html.escape(value)}")
    return "\n".join(lines)


def format_lookup(number: str, items: Sequence[Transport]) -> str:
    if not items:
        return f"Nothing found for <b>{html.escape(number)}</b>."
    return "\n\n".join(format_transport(item) for item in items)


class FollowPoller:
    """One polling unit of a ``/follow`` subscription.

    The first successful poll only records what is already there; later polls
    deliver registrations whose ids are not in ``subscription.last_ids``.
    """

    def __init__(
        self,
        subscription: Subscription,
        *,
        storage: Storage,
        notifier: Notifier,
        params: Mapping[str, str],
        interval_s: float,
    ) -> None:
        self._subscription = subscription
        self._storage = storage
        self._notifier = notifier
        self._params = dict(params)
        self._interval_s = interval_s
        self._seeded = False
        self._failing = False

    async def __call__(self, token: CancelToken) -> None:
        chat_id = self._subscription.chat_id
        try:
            items = await self._storage.search(self._params)
        except ServiceError as e:
            logger.warning("follow.poll_failed", chat_id=chat_id, error=str(e))
            if not self._failing:
                self._failing = True
                await self._notifier.send(
                    chat_id, "Registration storage is unavailable, will keep trying."
                )
        else:
            if self._failing:
                logger.info("follow.poll_recovered", chat_id=chat_id)
            self._failing = False
            await self._deliver(token, items)
        await token.sleep(self._interval_s)

    async def _deliver(self, token: CancelToken, items: Sequence[Transport]) -> None:
        subscription = self._subscription
        if not self._seeded:
            self._seeded = True
            subscription.last_ids = [item.id for item in items][:MAX_LAST_IDS]
            logger.debug(
                "follow.seeded",
                chat_id=subscription.chat_id,
                count=len(subscription.last_ids),
            )
            return

        seen = set(subscription.last_ids)
        fresh = [item for item in items if item.id not in seen]
        delivered: list[str] = []
        # storage returns newest first; notify in chronological order
        for item in reversed(fresh):
            if token.cancelled:
                break
            await self._notifier.send(
                subscription.chat_id,
                format_transport(item),
                parse_mode=PARSE_MODE_HTML,
            )
            delivered.append(item.id)
        if delivered:
            logger.info(
                "follow.delivered", chat_id=subscription.chat_id, count=len(delivered)
            )
            merged = list(reversed(delivered)) + subscription.last_ids
            subscription.last_ids = list(dict.fromkeys(merged))[:MAX_LAST_IDS]


@dataclass(slots=True)
class BotHandlers:
    bot: BotClient
    notifier: Notifier
    recognizer: Recognizer
    storage: Storage
    subscriptions: Subscriptions
    poll_interval_s: float
    files_dir: Path | None = None

    def register(self, router: Router) -> None:
        router.handle("/start", self.handle_start)
        router.handle("/follow", self.handle_follow)
        router.handle("/stop", self.handle_stop)
        router.handle("/status", self.handle_status)
        router.handle_regexp(PLATE_RE, self.handle_plate)
        router.handle_photo(self.handle_photo)

    async def _reply(
        self, msg: TelegramIncomingMessage, text: str, *, html_mode: bool = False
    ) -> None:
        await self.notifier.send(
            msg.chat_id,
            text,
            parse_mode=PARSE_MODE_HTML if html_mode else None,
            reply_to_message_id=msg.message_id,
        )

    async def handle_start(self, msg: TelegramIncomingMessage) -> None:
        await self._reply(msg, USAGE)

    async def handle_follow(self, msg: TelegramIncomingMessage) -> None:
        try:
            params = parse_follow_params(msg.text)
        except FollowParamsError as e:
            await self._reply(msg, f"Usage: /follow key=value ... ({e})")
            return
        subscription = self.subscriptions.get_or_create(msg.chat)
        poller = FollowPoller(
            subscription,
            storage=self.storage,
            notifier=self.notifier,
            params=params,
            interval_s=self.poll_interval_s,
        )
        restarted = await subscription.start(poller, params=params)
        verb = "Updated" if restarted else "Started"
        await self._reply(msg, f"{verb} following: {format_params(params)}")

    async def handle_stop(self, msg: TelegramIncomingMessage) -> None:
        subscription = self.subscriptions.get(msg.chat_id)
        stopped = subscription is not None and await subscription.stop()
        await self.subscriptions.remove(msg.chat_id)
        if not stopped:
            await self._reply(msg, "Nothing to stop.")
            return
        await self._reply(msg, "Stopped following.")

    async def handle_status(self, msg: TelegramIncomingMessage) -> None:
        subscription = self.subscriptions.get(msg.chat_id)
        if subscription is None or not subscription.running:
            await self._reply(msg, "No active subscription.")
            return
        await self._reply(msg, f"Following: {format_params(subscription.params)}")

    async def _lookup(self, number: str) -> str:
        try:
            items = await self.storage.find_by_number(number)
        except ServiceError as e:
            logger.warning("lookup.failed", number=number, error=str(e))
            return f"Lookup for <b>{html.escape(number)}</b> failed, try again later."
        return format_lookup(number, items)

    async def handle_plate(self, msg: TelegramIncomingMessage) -> None:
        number = normalize_plate(msg.text)
        logger.info("lookup.plate", chat_id=msg.chat_id, number=number)
        await self._reply(msg, await self._lookup(number), html_mode=True)

    async def _save_photo(self, file_path: str, data: bytes) -> None:
        if self.files_dir is None:
            return
        target = anyio.Path(self.files_dir) / Path(file_path).name
        await target.parent.mkdir(parents=True, exist_ok=True)
        await target.write_bytes(data)
        logger.debug("photo.saved", path=str(target))

    async def handle_photo(self, msg: TelegramIncomingMessage) -> None:
        assert msg.photo is not None
        file = await self.bot.get_file(msg.photo.file_id)
        if file is None or not file.file_path:
            await self._reply(msg, "Could not fetch the photo.")
            return
        data = await self.bot.download_file(file.file_path)
        if data is None:
            await self._reply(msg, "Could not download the photo.")
            return
        await self._save_photo(file.file_path, data)

        try:
            plates = await self.recognizer.recognize(
                data, filename=Path(file.file_path).name
            )
        except ServiceError as e:
            logger.warning("photo.recognize_failed", chat_id=msg.chat_id, error=str(e))
            await self._reply(msg, "Recognition service is unavailable.")
            return
        if not plates:
            await self._reply(msg, "No number plates recognized.")
            return

        numbers = list(dict.fromkeys(normalize_plate(p.plate) for p in plates))
        logger.info("photo.recognized", chat_id=msg.chat_id, plates=numbers)
        sections = [await self._lookup(n) for n in numbers[:MAX_RECOGNIZED_PLATES]]
        await self._reply(msg, "\n\n".join(sections), html_mode=True)
