"""Opponent-submission signals between match players.

The bridge only ever flips Session.opponent_submitted; it never touches
the submission state machine. Channels are best-effort pub/sub keyed by
room (the match id).
"""
from __future__ import annotations

import logging
from collections import defaultdict
from typing import TYPE_CHECKING, Any, Awaitable, Callable, Dict, List, Protocol, Tuple

from .types import SubmissionEvent

if TYPE_CHECKING:
    import socketio

    from .session import Session

logger = logging.getLogger(__name__)

OPPONENT_SUBMITTED = "opponent-submitted"
CODE_SUBMITTED = "code-submitted"

Handler = Callable[[Dict[str, Any]], None]
Unsubscribe = Callable[[], Awaitable[None]]


class NotificationChannel(Protocol):
    async def subscribe(self, room: str, event: str, handler: Handler) -> Unsubscribe:
        ...

    async def publish(self, room: str, event: str, payload: Dict[str, Any]) -> None:
        ...


class LocalChannel:
    """In-process channel: publish delivers synchronously to the room."""

    def __init__(self) -> None:
        self._handlers: Dict[Tuple[str, str], List[Handler]] = defaultdict(list)
        self.published: List[Tuple[str, str, Dict[str, Any]]] = []

    def subscriber_count(self, room: str, event: str) -> int:
        return len(self._handlers.get((room, event), ()))

    async def subscribe(self, room: str, event: str, handler: Handler) -> Unsubscribe:
        key = (room, event)
        self._handlers[key].append(handler)

        async def unsubscribe() -> None:
            handlers = self._handlers.get(key)
            if handlers and handler in handlers:
                handlers.remove(handler)
                if not handlers:
                    del self._handlers[key]

        return unsubscribe

    async def publish(self, room: str, event: str, payload: Dict[str, Any]) -> None:
        self.published.append((room, event, dict(payload)))
        for handler in list(self._handlers.get((room, event), ())):
            handler(dict(payload))


class SocketIOChannel:
    """Adapter over a connected ``socketio.AsyncClient``.

    The server relays ``code-submitted`` from one player to the other as
    ``opponent-submitted`` inside the match room. One dispatcher is
    registered per event name; payloads are routed to rooms by matchId.
    """

    def __init__(self, client: "socketio.AsyncClient") -> None:
        self._client = client
        self._handlers: Dict[Tuple[str, str], List[Handler]] = defaultdict(list)
        self._events: set[str] = set()

    def _dispatcher(self, event: str) -> Handler:
        def dispatch(data: Dict[str, Any]) -> None:
            room = str((data or {}).get("matchId") or "")
            for handler in list(self._handlers.get((room, event), ())):
                handler(data)

        return dispatch

    async def subscribe(self, room: str, event: str, handler: Handler) -> Unsubscribe:
        if event not in self._events:
            self._client.on(event, self._dispatcher(event))
            self._events.add(event)
        key = (room, event)
        first_in_room = not any(r == room for r, _ in self._handlers)
        self._handlers[key].append(handler)
        if first_in_room:
            await self._client.emit("join-match", room)

        async def unsubscribe() -> None:
            handlers = self._handlers.get(key)
            if not handlers or handler not in handlers:
                return
            handlers.remove(handler)
            if not handlers:
                del self._handlers[key]
            if not any(r == room for r, _ in self._handlers):
                await self._client.emit("leave-match", room)

        return unsubscribe

    async def publish(self, room: str, event: str, payload: Dict[str, Any]) -> None:
        await self._client.emit(event, dict(payload, matchId=room))


class Subscription:
    """Handle for one session's registration on a channel."""

    def __init__(self, room: str, unsubscribe: Unsubscribe) -> None:
        self.room = room
        self._unsubscribe: Unsubscribe | None = unsubscribe

    @property
    def active(self) -> bool:
        return self._unsubscribe is not None

    async def close(self) -> None:
        unsubscribe, self._unsubscribe = self._unsubscribe, None
        if unsubscribe is not None:
            await unsubscribe()
            logger.debug(f"Unsubscribed from room {self.room}")


class NotificationBridge:
    def __init__(
        self,
        channel: NotificationChannel,
        *,
        user_id: str | None = None,
        username: str | None = None,
    ) -> None:
        self._channel = channel
        self._user_id = user_id
        self._username = username

    async def subscribe(
        self,
        session: "Session",
        room: str,
        on_opponent_submitted: Callable[[SubmissionEvent], None] | None = None,
    ) -> Subscription:
        """Mark the session when the opponent submits; forward the event."""
        subscription: Subscription | None = None

        def handle(payload: Dict[str, Any]) -> None:
            if subscription is None or not subscription.active or not session.active:
                return
            if self._user_id is not None and payload.get("userId") == self._user_id:
                return
            session.opponent_submitted = True
            logger.info(f"Opponent submitted in room {room}")
            if on_opponent_submitted is not None:
                on_opponent_submitted(payload)  # type: ignore[arg-type]

        unsubscribe = await self._channel.subscribe(room, OPPONENT_SUBMITTED, handle)
        subscription = Subscription(room, unsubscribe)
        return subscription

    async def announce_submission(self, room: str) -> None:
        """Tell the opponent that the local player has submitted."""
        event: SubmissionEvent = {
            "matchId": room,
            "userId": self._user_id,
            "username": self._username,
        }
        await self._channel.publish(room, CODE_SUBMITTED, dict(event))
