"""Connection hub for interactive pick queries.

Every connected client runs a reader and a writer task. Queries from all
clients go through one shared worker, one pick at a time in arrival order,
and each result is broadcast to every connected client. A client that cannot
take a message within the delivery window is evicted.
"""

import asyncio
import itertools
import logging
from dataclasses import dataclass
from typing import Dict, List, Optional

from pydantic import ValidationError

from backend.models import PickMessage, PixelQuery
from terrainpick.constants import (
    BROADCAST_TIMEOUT, MAX_PENDING_QUERIES, NOT_SELECTED_MESSAGE, QUERY_QUEUE_SIZE,
)
from terrainpick.picking import PickOutcome, format_pick_message
from terrainpick.scene import TerrainScene

logger = logging.getLogger(__name__)

_client_ids = itertools.count(1)


class ClientConnection:
    """One websocket client: its socket, a one-slot outbox and a closed flag."""

    def __init__(self, websocket):
        self.id = next(_client_ids)
        self.websocket = websocket
        self.outbox: asyncio.Queue = asyncio.Queue(maxsize=1)
        self.closed = asyncio.Event()
        self.pending = 0

    def __repr__(self) -> str:
        return f"<ClientConnection {self.id}>"

    @property
    def is_closed(self) -> bool:
        return self.closed.is_set()

    def close(self) -> None:
        self.closed.set()

    async def deliver(self, text: str, timeout: float) -> bool:
        """Queue *text* for the writer; False if the client missed the window."""
        if self.is_closed:
            return False
        put = asyncio.ensure_future(self.outbox.put(text))
        closed = asyncio.ensure_future(self.closed.wait())
        try:
            await asyncio.wait({put, closed}, timeout=timeout,
                               return_when=asyncio.FIRST_COMPLETED)
        finally:
            put.cancel()
            closed.cancel()
        return put.done() and not put.cancelled()

    async def next_message(self) -> Optional[str]:
        """Next outbox message, or None once the connection is closed."""
        get = asyncio.ensure_future(self.outbox.get())
        closed = asyncio.ensure_future(self.closed.wait())
        try:
            await asyncio.wait({get, closed}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            get.cancel()
            closed.cancel()
        if self.is_closed or get.cancelled():
            return None
        return get.result()


@dataclass(eq=False)
class PickQuery:
    x: int
    y: int
    origin: Optional[ClientConnection] = None
    reply: Optional[asyncio.Future] = None


class ConnectionHub:
    """Client registry plus the single picking worker for one scene."""

    def __init__(self, scene: TerrainScene, timeout: float = BROADCAST_TIMEOUT,
                 max_pending: int = MAX_PENDING_QUERIES,
                 queue_size: int = QUERY_QUEUE_SIZE):
        self.scene = scene
        self.timeout = timeout
        self.max_pending = max_pending
        self.queue: asyncio.Queue = asyncio.Queue(maxsize=queue_size)
        self._clients: Dict[int, ClientConnection] = {}
        self._lock = asyncio.Lock()
        self._worker: Optional[asyncio.Task] = None

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def start(self) -> None:
        if self._worker is None:
            self._worker = asyncio.create_task(self._work())

    async def stop(self) -> None:
        if self._worker is not None:
            self._worker.cancel()
            try:
                await self._worker
            except asyncio.CancelledError:
                pass
            self._worker = None
        async with self._lock:
            for client in self._clients.values():
                client.close()
            self._clients.clear()

    # ------------------------------------------------------------------
    # Registry
    # ------------------------------------------------------------------

    async def register(self, websocket) -> ClientConnection:
        client = ClientConnection(websocket)
        async with self._lock:
            self._clients[client.id] = client
            count = len(self._clients)
        logger.info(f"Client {client.id} connected ({count} connected)")
        return client

    async def unregister(self, client: ClientConnection) -> None:
        client.close()
        async with self._lock:
            removed = self._clients.pop(client.id, None)
            count = len(self._clients)
        if removed is not None:
            logger.info(f"Client {client.id} disconnected ({count} connected)")

    async def evict(self, client: ClientConnection) -> None:
        client.close()
        async with self._lock:
            removed = self._clients.pop(client.id, None)
        if removed is not None:
            logger.warning(f"Evicted client {client.id}: no delivery within {self.timeout}s")

    async def clients(self) -> List[ClientConnection]:
        async with self._lock:
            return list(self._clients.values())

    # ------------------------------------------------------------------
    # Picking
    # ------------------------------------------------------------------

    async def submit(self, query: PickQuery) -> None:
        if query.origin is not None:
            query.origin.pending += 1
        await self.queue.put(query)

    async def pick(self, x: int, y: int) -> PickOutcome:
        """One-shot pick through the shared worker (not broadcast)."""
        reply = asyncio.get_running_loop().create_future()
        await self.submit(PickQuery(x, y, reply=reply))
        return await reply

    async def _work(self) -> None:
        while True:
            query = await self.queue.get()
            try:
                await self._process(query)
            finally:
                self.queue.task_done()

    async def _process(self, query: PickQuery) -> None:
        try:
            outcome = await asyncio.to_thread(self.scene.pick, query.x, query.y)
            text = format_pick_message(query.x, query.y, outcome)
        except Exception as exc:
            logger.exception(f"Pick failed at ({query.x}, {query.y})")
            if query.reply is not None and not query.reply.done():
                query.reply.set_exception(exc)
            text = NOT_SELECTED_MESSAGE
        else:
            if query.reply is not None and not query.reply.done():
                query.reply.set_result(outcome)
        finally:
            if query.origin is not None:
                query.origin.pending -= 1

        if query.origin is not None:
            await self.broadcast(text)

    async def broadcast(self, text: str) -> None:
        """Deliver *text* to every client at once; evict the ones too slow to take it."""
        targets = await self.clients()
        delivered = await asyncio.gather(
            *(client.deliver(text, self.timeout) for client in targets))
        for client, ok in zip(targets, delivered):
            if ok:
                continue
            if client.is_closed:
                # Disconnected on its own, not a slow consumer
                await self.unregister(client)
            else:
                await self.evict(client)

    # ------------------------------------------------------------------
    # Per-connection duties
    # ------------------------------------------------------------------

    async def _read(self, client: ClientConnection) -> None:
        while not client.is_closed:
            raw = await client.websocket.receive_text()
            try:
                query = PixelQuery.model_validate_json(raw)
            except ValidationError as exc:
                logger.warning(f"Client {client.id}: skipping invalid query {raw!r} "
                               f"({exc.error_count()} errors)")
                continue
            if client.pending >= self.max_pending:
                logger.warning(f"Client {client.id}: dropping query ({query.x}, {query.y}), "
                               f"{client.pending} already waiting")
                continue
            logger.debug(f"Client {client.id}: query ({query.x}, {query.y})")
            await self.submit(PickQuery(query.x, query.y, origin=client))

    async def _write(self, client: ClientConnection) -> None:
        while True:
            text = await client.next_message()
            if text is None:
                return
            message = PickMessage(messageprocessed=text)
            await client.websocket.send_text(message.model_dump_json())

    async def serve(self, websocket) -> None:
        """Run one client's reader and writer until either stops or it is evicted."""
        client = await self.register(websocket)
        tasks = [asyncio.create_task(self._read(client)),
                 asyncio.create_task(self._write(client)),
                 asyncio.create_task(client.closed.wait())]
        try:
            done, _ = await asyncio.wait(tasks, return_when=asyncio.FIRST_COMPLETED)
            for task in done:
                if not task.cancelled() and task.exception() is not None:
                    logger.info(f"Client {client.id} closed: {task.exception()!r}")
        finally:
            client.close()
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
            await self.unregister(client)
