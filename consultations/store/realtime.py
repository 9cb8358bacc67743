"""Supabase realtime change feed for the bookings table.

Speaks the Phoenix channel protocol over an ``aiohttp`` WebSocket::

  → {"topic": "realtime:bookings-channel", "event": "phx_join", ...}
  ← {"event": "phx_reply", "payload": {"status": "ok"}}
  ← {"event": "postgres_changes", "payload": {"data": {"type": "INSERT", ...}}}
  → {"topic": "phoenix", "event": "heartbeat"}             every 30 s
  → {"event": "phx_leave"}                                  on close

There is no reconnect: if the socket drops, the feed stays down until the
owner closes and reopens it.
"""

from __future__ import annotations

import asyncio
import inspect
import itertools
import json
import logging
from typing import Any
from urllib.parse import urlencode

import aiohttp

from .base import BookingChange, ChangeCallback, StoreError

log = logging.getLogger("consultations.store.realtime")

CHANNEL_TOPIC = "realtime:bookings-channel"


async def dispatch_change(on_change: ChangeCallback, change: BookingChange) -> None:
    """Invoke a sync or async change callback; errors are logged, not raised."""
    try:
        result = on_change(change)
        if inspect.isawaitable(result):
            await result
    except Exception:
        log.exception("Change callback failed for %s event", change.type)


def parse_change(payload: dict[str, Any]) -> BookingChange | None:
    """Extract a BookingChange from a ``postgres_changes`` payload."""
    data = payload.get("data")
    if not isinstance(data, dict) or "type" not in data:
        return None
    return BookingChange(
        type=str(data["type"]).upper(),
        record=data.get("record") or None,
        old_record=data.get("old_record") or None,
    )


class SupabaseRealtimeChannel:
    """One subscription to insert/update/delete events on a table."""

    def __init__(
        self,
        url: str,
        api_key: str,
        table: str = "bookings",
        schema: str = "public",
        heartbeat_interval: float = 30.0,
        join_timeout: float = 10.0,
    ) -> None:
        self._url = url.rstrip("/")
        self._api_key = api_key
        self._table = table
        self._schema = schema
        self._heartbeat_interval = heartbeat_interval
        self._join_timeout = join_timeout
        self._refs = itertools.count(1)

        self._session: aiohttp.ClientSession | None = None
        self._ws: aiohttp.ClientWebSocketResponse | None = None
        self._reader: asyncio.Task | None = None
        self._heartbeat: asyncio.Task | None = None

    @property
    def websocket_url(self) -> str:
        base = self._url.replace("https://", "wss://", 1).replace("http://", "ws://", 1)
        query = urlencode({"apikey": self._api_key, "vsn": "1.0.0"})
        return f"{base}/realtime/v1/websocket?{query}"

    @property
    def is_open(self) -> bool:
        return self._ws is not None and not self._ws.closed

    def _message(self, topic: str, event: str, payload: dict[str, Any]) -> dict[str, Any]:
        return {"topic": topic, "event": event, "payload": payload, "ref": str(next(self._refs))}

    def join_message(self) -> dict[str, Any]:
        return self._message(
            CHANNEL_TOPIC,
            "phx_join",
            {
                "config": {
                    "broadcast": {"self": False},
                    "presence": {"key": ""},
                    "postgres_changes": [
                        {"event": "*", "schema": self._schema, "table": self._table}
                    ],
                },
                "access_token": self._api_key,
            },
        )

    # ── Lifecycle ─────────────────────────────────────────────

    async def open(self, on_change: ChangeCallback) -> None:
        """Connect, join the channel and start delivering changes."""
        self._session = aiohttp.ClientSession()
        try:
            self._ws = await self._session.ws_connect(self.websocket_url)
            join = self.join_message()
            await self._ws.send_json(join)
            await asyncio.wait_for(self._await_join(join["ref"]), self._join_timeout)
        except (aiohttp.ClientError, asyncio.TimeoutError) as exc:
            await self.close()
            raise StoreError(f"Could not open realtime channel: {exc}") from exc
        except BaseException:
            await self.close()
            raise

        self._reader = asyncio.create_task(self._read_loop(on_change))
        self._heartbeat = asyncio.create_task(self._heartbeat_loop())
        log.info("Realtime channel joined for %s.%s", self._schema, self._table)

    async def _await_join(self, ref: str) -> None:
        assert self._ws is not None
        async for msg in self._ws:
            if msg.type != aiohttp.WSMsgType.TEXT:
                continue
            frame = json.loads(msg.data)
            if frame.get("event") == "phx_reply" and frame.get("ref") == ref:
                status = frame.get("payload", {}).get("status")
                if status != "ok":
                    raise StoreError(f"Realtime join rejected: {frame.get('payload')}")
                return
        raise StoreError("Realtime socket closed before join was acknowledged")

    async def _read_loop(self, on_change: ChangeCallback) -> None:
        assert self._ws is not None
        async for msg in self._ws:
            if msg.type == aiohttp.WSMsgType.TEXT:
                frame = json.loads(msg.data)
                if frame.get("event") != "postgres_changes":
                    continue
                change = parse_change(frame.get("payload", {}))
                if change is not None:
                    log.info("Realtime booking change: %s", change.type)
                    await dispatch_change(on_change, change)
            elif msg.type in (aiohttp.WSMsgType.ERROR, aiohttp.WSMsgType.CLOSED):
                break
        log.warning("Realtime channel for %s dropped; not reconnecting", self._table)

    async def _heartbeat_loop(self) -> None:
        while self.is_open:
            await asyncio.sleep(self._heartbeat_interval)
            if not self.is_open:
                break
            try:
                await self._ws.send_json(self._message("phoenix", "heartbeat", {}))
            except (aiohttp.ClientError, ConnectionResetError) as exc:
                log.warning("Realtime heartbeat failed: %s", exc)
                break

    async def close(self) -> None:
        """Leave the channel and release the socket. Safe to call twice."""
        for task in (self._heartbeat, self._reader):
            if task is not None and not task.done():
                task.cancel()
                try:
                    await task
                except asyncio.CancelledError:
                    pass
        self._heartbeat = self._reader = None

        if self._ws is not None:
            if not self._ws.closed:
                try:
                    await self._ws.send_json(self._message(CHANNEL_TOPIC, "phx_leave", {}))
                except (aiohttp.ClientError, ConnectionResetError):
                    pass
                await self._ws.close()
            self._ws = None

        if self._session is not None:
            await self._session.close()
            self._session = None
            log.info("Realtime channel for %s released", self._table)
