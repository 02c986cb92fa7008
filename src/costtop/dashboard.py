import asyncio
import time
from collections.abc import Callable, Mapping

import structlog

from costtop.events import PromptBuffer, handle_key
from costtop.fetch import FetchAggregator
from costtop.layout import DEFAULT_SETTINGS, LayoutSettings
from costtop.metrics import STAGE_CRASH, FetchMetrics
from costtop.models import Provider
from costtop.navigation import (
    Command,
    NavigationState,
    PromptCredentialsCommand,
    QuitCommand,
    RefreshCommand,
    ScrollCommand,
    SubmitCredentialsCommand,
)
from costtop.provider.anthropic import AnthropicProvider
from costtop.provider.base import ProviderClient
from costtop.provider.openai import OpenAIProvider
from costtop.session import ProviderSession
from costtop.view import DashboardFrame, build_frame, current_filters

logger = structlog.get_logger()

# seconds between redraws
TICK_SECONDS = 0.05

ClientFactory = Callable[[Provider, str], ProviderClient]


def build_client(provider: "Provider", api_key: "str") -> "ProviderClient":
    if provider is Provider.OPENAI:
        return OpenAIProvider(api_key=api_key)
    return AnthropicProvider(api_key=api_key)


class Dashboard:
    """
    Dashboard owns one ProviderSession per provider and the navigation
    state. Fetches run as background tasks; the draw loop only reads
    session state and never waits on the network.
    """

    def __init__(
        self,
        api_keys: "Mapping[Provider, str]",
        aggregator: "FetchAggregator | None" = None,
        metrics: "FetchMetrics | None" = None,
        settings: "LayoutSettings" = DEFAULT_SETTINGS,
        client_factory: "ClientFactory" = build_client,
        refresh_interval: "float" = 0,
    ) -> "None":
        self._aggregator = aggregator or FetchAggregator()
        self._metrics = metrics
        self._settings = settings
        self._client_factory = client_factory
        self._refresh_interval = refresh_interval
        self._tasks: "set[asyncio.Task]" = set()
        self._stop_event: "asyncio.Event" = asyncio.Event()

        self.nav = NavigationState()
        self.prompt = PromptBuffer()
        self.sessions: "dict[Provider, ProviderSession]" = {}
        for provider in Provider:
            session = ProviderSession(provider=provider)
            api_key = api_keys.get(provider, "").strip()
            if api_key:
                session.set_client(client_factory(provider, api_key))
            self.sessions[provider] = session

    @property
    def stopped(self) -> "bool":
        return self._stop_event.is_set()

    def start(self) -> "None":
        """
        selects the initial provider, which either fetches it or asks
        for its credentials.
        """
        self.dispatch_sync(self.nav.select_provider(self.nav.provider, self.sessions))

    def request_refresh(self, provider: "Provider") -> "bool":
        """
        starts a background fetch for provider. Returns False when the
        provider has no credentials or a fetch is already running.
        """
        session = self.sessions[provider]
        client = session.client
        if client is None or not session.begin_fetch():
            return False

        task = asyncio.create_task(self._fetch(session, client))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return True

    def request_quit(self) -> "None":
        self._stop_event.set()

    async def set_credentials(self, provider: "Provider", api_key: "str") -> "None":
        """
        replaces the client of provider and fetches with the new key
        when provider is on screen.
        """
        session = self.sessions[provider]
        previous = session.set_client(self._client_factory(provider, api_key))
        logger.info("credentials_updated", provider=provider.value)
        if previous is not None and not session.in_flight:
            await previous.close()
        if provider is self.nav.provider:
            self.request_refresh(provider)

    def scroll(self, delta: "int") -> "None":
        self.sessions[self.nav.provider].scroll(self.nav.metric, delta)

    def frame(self, width: "int", height: "int") -> "DashboardFrame":
        return build_frame(
            self.sessions,
            self.nav,
            width,
            height,
            self._settings,
            prompt_input=self.prompt.text,
        )

    async def handle_key(self, key: "str") -> "None":
        session = self.sessions[self.nav.provider]
        filters = current_filters(session, self.nav)
        command = handle_key(self.nav, key, self.sessions, filters, self.prompt)
        await self.dispatch(command)

    async def dispatch(self, command: "Command") -> "None":
        if isinstance(command, SubmitCredentialsCommand):
            await self.set_credentials(command.provider, command.api_key)
            return
        self.dispatch_sync(command)

    def dispatch_sync(self, command: "Command") -> "None":
        if isinstance(command, RefreshCommand):
            self.request_refresh(command.provider)
        elif isinstance(command, PromptCredentialsCommand):
            self.prompt.clear()
        elif isinstance(command, ScrollCommand):
            self.scroll(command.delta)
        elif isinstance(command, QuitCommand):
            self.request_quit()

    def _auto_refresh(self) -> "None":
        if self._refresh_interval <= 0:
            return
        session = self.sessions[self.nav.provider]
        if session.in_flight or session.last_fetched_at is None:
            return
        if time.time() - session.last_fetched_at >= self._refresh_interval:
            logger.debug("auto_refresh", provider=session.provider.value)
            self.request_refresh(session.provider)

    async def run(
        self,
        read_key: "Callable[[], str | None]",
        draw: "Callable[[], None]",
    ) -> "None":
        """
        runs the input and draw loop until request_quit() is called.
        """
        self.start()

        while not self._stop_event.is_set():
            while (key := read_key()) is not None:
                await self.handle_key(key)
                if self._stop_event.is_set():
                    return

            self._auto_refresh()
            draw()

            try:
                await asyncio.wait_for(self._stop_event.wait(), timeout=TICK_SECONDS)
            except TimeoutError:
                pass

    async def close(self) -> "None":
        """
        cancels fetches still running and closes all provider clients.
        """
        for task in list(self._tasks):
            task.cancel()
        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)

        for session in self.sessions.values():
            if session.client is not None:
                await session.client.close()

    async def _fetch(self, session: "ProviderSession", client: "ProviderClient") -> "None":
        provider = session.provider
        started = time.monotonic()
        try:
            outcome = await self._aggregator.run(provider, client)
        except Exception as e:
            logger.exception("fetch_crashed", provider=provider.value)
            session.abort_fetch(f"Fetch failed: {e}")
            if self._metrics is not None:
                self._metrics.inc_fetch_error(provider.value, STAGE_CRASH)
        else:
            session.apply(outcome)
            if self._metrics is not None:
                self._metrics.record_outcome(outcome, time.time())
        finally:
            if self._metrics is not None:
                self._metrics.observe_fetch_duration(
                    provider.value, time.monotonic() - started
                )

        # credentials changed while this fetch was running
        if session.client is not client:
            await client.close()
            self.request_refresh(provider)
