"""Per-source live update listener (subscribe, initial load, stream, reconnect)"""

import asyncio
import time
from typing import List, Optional

from scrapledger.constants import (
    ListenerState,
    LISTENER_STATE_CODES,
    DEFAULT_RECONNECT_BASE_DELAY,
    DEFAULT_RECONNECT_MAX_DELAY
)
from scrapledger.orchestrator.retry_handler import async_retry_with_exponential_backoff
from scrapledger.orchestrator.store import TransactionStore
from scrapledger.tools.data_source import RecordSource, Subscription
from scrapledger.utils.errors import ReportingError, SourceUnavailableError
from scrapledger.utils.logging import get_logger
from scrapledger.utils.metrics import initial_load_time, listener_reconnects, listener_state

logger = get_logger(__name__)

ALLOWED_TRANSITIONS = {
    ListenerState.DISCONNECTED: {ListenerState.SUBSCRIBING},
    ListenerState.SUBSCRIBING: {ListenerState.ACTIVE, ListenerState.RECONNECTING, ListenerState.DISCONNECTED},
    ListenerState.ACTIVE: {ListenerState.RECONNECTING, ListenerState.DISCONNECTED},
    ListenerState.RECONNECTING: {ListenerState.ACTIVE, ListenerState.DISCONNECTED},
}


class SourceListener:
    """
    Keeps one source's slice of the working set fresh.

    DISCONNECTED -> SUBSCRIBING -> ACTIVE; ACTIVE -> RECONNECTING -> ACTIVE on
    transport loss; any state -> DISCONNECTED on stop(). The subscription is
    opened before the full fetch so changes raised during the load are
    buffered and replayed after it.
    """

    def __init__(
        self,
        source: RecordSource,
        store: TransactionStore,
        reconnect_base_delay: float = DEFAULT_RECONNECT_BASE_DELAY,
        reconnect_max_delay: float = DEFAULT_RECONNECT_MAX_DELAY,
        max_reconnect_attempts: Optional[int] = None
    ):
        self.source = source
        self.store = store
        self.reconnect_base_delay = reconnect_base_delay
        self.reconnect_max_delay = reconnect_max_delay
        # 0 or None: retry forever
        self.max_reconnect_attempts = max_reconnect_attempts or None

        self.state = ListenerState.DISCONNECTED
        self.history: List[ListenerState] = [ListenerState.DISCONNECTED]
        self.loaded = asyncio.Event()
        self.last_error: Optional[str] = None
        self.reconnects = 0

        self._task: Optional[asyncio.Task] = None
        self._subscription: Optional[Subscription] = None
        self._stopping = False
        listener_state.labels(source=self.source.name).set(LISTENER_STATE_CODES[self.state])

    @property
    def kind(self):
        return self.source.kind

    @property
    def is_active(self) -> bool:
        return self.state == ListenerState.ACTIVE

    def _transition(self, new_state: ListenerState) -> None:
        if new_state == self.state:
            return
        if new_state not in ALLOWED_TRANSITIONS[self.state]:
            raise ReportingError(f"Illegal listener transition {self.state.value} -> {new_state.value}")

        logger.info(
            "Listener state changed",
            source=self.source.name,
            previous=self.state.value,
            state=new_state.value
        )
        self.state = new_state
        self.history.append(new_state)
        listener_state.labels(source=self.source.name).set(LISTENER_STATE_CODES[new_state])

    def start(self) -> asyncio.Task:
        if self._task is None or self._task.done():
            self._stopping = False
            self._task = asyncio.create_task(self.run(), name=f"listener-{self.source.name}")
        return self._task

    async def stop(self) -> None:
        """Explicit teardown: close the subscription and end in DISCONNECTED"""
        self._stopping = True
        if self._subscription is not None:
            self._subscription.close()
        if self._task is not None and not self._task.done():
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
        self._task = None
        if self.state != ListenerState.DISCONNECTED:
            self._transition(ListenerState.DISCONNECTED)

    async def wait_until_loaded(self, timeout: Optional[float] = None) -> None:
        await asyncio.wait_for(self.loaded.wait(), timeout)

    def _on_connect_retry(self, attempt: int, error: BaseException, delay: float) -> None:
        self.last_error = str(error)
        if self.state != ListenerState.RECONNECTING:
            self._transition(ListenerState.RECONNECTING)

    async def _connect(self) -> Subscription:
        """Open the subscription, then fetch and load a full snapshot"""
        subscription = await self.source.subscribe()
        try:
            started = time.time()
            records = await self.source.fetch_all()
            await self.store.reload(self.kind, records)
            initial_load_time.labels(source=self.source.name).observe(time.time() - started)
        except BaseException:
            subscription.close()
            raise

        self._subscription = subscription
        self._transition(ListenerState.ACTIVE)
        self.last_error = None
        self.loaded.set()
        return subscription

    async def run(self) -> None:
        """Listener main loop; returns after stop() or when reconnect attempts run out"""
        self._transition(ListenerState.SUBSCRIBING)

        try:
            while not self._stopping:
                try:
                    subscription = await async_retry_with_exponential_backoff(
                        self._connect,
                        max_retries=self.max_reconnect_attempts,
                        base_delay=self.reconnect_base_delay,
                        max_delay=self.reconnect_max_delay,
                        retry_on=(SourceUnavailableError,),
                        on_retry=self._on_connect_retry
                    )
                except ReportingError as e:
                    self.last_error = str(e)
                    logger.error("Giving up on source", source=self.source.name, error=str(e))
                    break

                try:
                    async for event in subscription:
                        await self.store.submit(event)
                except SourceUnavailableError as e:
                    self.last_error = str(e)
                finally:
                    subscription.close()
                    self._subscription = None

                if self._stopping:
                    break

                # Transport lost (error or subscription ended by the source)
                self.reconnects += 1
                listener_reconnects.labels(source=self.source.name).inc()
                logger.warning("Subscription lost, reconnecting", source=self.source.name, error=self.last_error)
                self._transition(ListenerState.RECONNECTING)
        finally:
            if self.state != ListenerState.DISCONNECTED:
                self._transition(ListenerState.DISCONNECTED)
