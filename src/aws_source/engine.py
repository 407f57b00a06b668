"""Engine that connects sources to the discovery network over NATS."""

import asyncio
import json
import logging
import ssl
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Set, Tuple

import nats
import tenacity
from nats.errors import Error as NatsError
from opentelemetry import trace

from .sdp import ErrorType, Query, QueryError, QueryMethod
from .sources.base import Source
from .stream import QueryResultStream

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)

ALL_SUBJECT = "request.all"
SCOPE_SUBJECT = "request.scope.{scope}"

DEFAULT_MAX_PARALLEL = 2000


@dataclass
class NatsOptions:
    """How to reach and authenticate to NATS."""
    servers: List[str] = field(default_factory=lambda: ["nats://localhost:4222", "nats://nats:4222"])
    connection_name: str = ""
    connect_timeout: float = 10
    num_retries: int = -1       # -1 retries forever
    retry_delay: float = 5
    reconnect_wait: float = 1
    max_reconnects: int = -1    # -1 reconnects forever
    creds_file: str = ""
    nkey_seed_file: str = ""
    tls_cert: str = ""
    tls_key: str = ""
    tls_ca: str = ""

    def tls_context(self) -> Optional[ssl.SSLContext]:
        if not (self.tls_ca or self.tls_cert):
            return None
        context = ssl.create_default_context(cafile=self.tls_ca or None)
        if self.tls_cert:
            context.load_cert_chain(self.tls_cert, self.tls_key or None)
        return context

    def connect_kwargs(self) -> Dict[str, Any]:
        """Keyword arguments for nats.connect."""
        kwargs: Dict[str, Any] = {
            'servers': self.servers,
            'connect_timeout': self.connect_timeout,
            'reconnect_time_wait': self.reconnect_wait,
            'max_reconnect_attempts': self.max_reconnects,
            'allow_reconnect': True,
        }
        if self.connection_name:
            kwargs['name'] = self.connection_name
        if self.creds_file:
            kwargs['user_credentials'] = self.creds_file
        if self.nkey_seed_file:
            kwargs['nkeys_seed'] = self.nkey_seed_file
        tls = self.tls_context()
        if tls is not None:
            kwargs['tls'] = tls
        return kwargs


class Engine:
    """
    Answers discovery queries from NATS using the registered sources.

    Queries arrive on `request.all` and `request.scope.{scope}`. Each one is
    run against every matching source on a bounded thread pool, and the
    results are published to the query's response subject as JSON: one
    message per item or error, then a final response message.
    """

    def __init__(
        self,
        name: str,
        nats_options: Optional[NatsOptions] = None,
        max_parallel_executions: int = DEFAULT_MAX_PARALLEL,
    ):
        self.name = name
        self.nats_options = nats_options or NatsOptions()
        self.max_parallel_executions = max_parallel_executions or DEFAULT_MAX_PARALLEL
        self.nc = None
        self._sources: List[Source] = []
        self._subscriptions = []
        self._tasks: Set[asyncio.Task] = set()
        self._pool = ThreadPoolExecutor(
            max_workers=self.max_parallel_executions,
            thread_name_prefix="query",
        )

    @property
    def sources(self) -> List[Source]:
        return list(self._sources)

    def add_sources(self, *sources: Source):
        for source in sources:
            logger.debug(f"Adding source {source.name} for {source.scopes()}")
            self._sources.append(source)

    def scopes(self) -> List[str]:
        """Every scope served by at least one source, in registration order."""
        seen = []
        for source in self._sources:
            for scope in source.scopes():
                if scope not in seen:
                    seen.append(scope)
        return seen

    def is_nats_connected(self) -> bool:
        return self.nc is not None and self.nc.is_connected

    async def _connect(self):
        opts = self.nats_options

        def _before_sleep(retry_state: tenacity.RetryCallState) -> None:
            exc = retry_state.outcome.exception() if retry_state.outcome else None
            logger.error(
                f"Error connecting to NATS (attempt {retry_state.attempt_number}), "
                f"retrying in {opts.retry_delay}s: {exc}"
            )

        retrying = tenacity.AsyncRetrying(
            retry=tenacity.retry_if_exception_type((NatsError, OSError, asyncio.TimeoutError)),
            wait=tenacity.wait_fixed(opts.retry_delay),
            stop=tenacity.stop_never if opts.num_retries < 0 else tenacity.stop_after_attempt(opts.num_retries + 1),
            before_sleep=_before_sleep,
            reraise=True,
        )

        try:
            async for attempt in retrying:
                with attempt:
                    self.nc = await nats.connect(**opts.connect_kwargs())
        except (NatsError, OSError, asyncio.TimeoutError) as e:
            attempts = retrying.statistics.get("attempt_number", 1)
            raise ConnectionError(f"could not connect to NATS after {attempts} attempts: {e}") from e

        logger.info(f"Connected to NATS at {self.nc.connected_url.netloc}")

    async def start(self):
        """Connect to NATS and subscribe to queries for every scope."""
        await self._connect()

        subjects = [ALL_SUBJECT] + [SCOPE_SUBJECT.format(scope=scope) for scope in self.scopes()]
        for subject in subjects:
            self._subscriptions.append(await self.nc.subscribe(subject, cb=self._on_request))
            logger.debug(f"Subscribed to {subject}")

        logger.info(f"Engine {self.name} started with {len(self._sources)} sources in {len(self.scopes())} scopes")

    async def stop(self):
        """Stop taking queries, let running ones finish publishing, then drain NATS."""
        for sub in self._subscriptions:
            try:
                await sub.unsubscribe()
            except NatsError as e:
                logger.warning(f"Error unsubscribing from {sub.subject}: {e}")
        self._subscriptions = []

        if self._tasks:
            results = await asyncio.gather(*self._tasks, return_exceptions=True)
            for result in results:
                if isinstance(result, Exception):
                    logger.error(f"Query failed during shutdown: {result}")

        # drain() closes the connection once buffered messages are flushed
        if self.nc is not None and not self.nc.is_closed:
            await self.nc.drain()

        self._pool.shutdown(wait=False)
        logger.info(f"Engine {self.name} stopped")

    async def _on_request(self, msg):
        try:
            query = Query.from_dict(json.loads(msg.data))
        except (ValueError, TypeError) as e:
            logger.error(f"Discarding invalid query on {msg.subject}: {e}")
            return

        if not query.subject:
            query.subject = msg.reply
        if not query.subject:
            logger.warning(f"Discarding query {query.uuid} with nowhere to send responses")
            return

        task = asyncio.create_task(self.handle_query(query))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    def _matching(self, query: Query) -> List[Tuple[Source, str]]:
        """(source, scope) pairs that should run the query."""
        matches = []
        for source in self._sources:
            if query.type != "*" and query.type != source.type:
                continue
            for scope in source.scopes():
                if query.scope == "*" or query.scope == scope:
                    matches.append((source, scope))
        return matches

    async def _publish(self, subject: str, message: Dict[str, Any]):
        await self.nc.publish(subject, json.dumps(message, default=str).encode())

    async def handle_query(self, query: Query):
        """Run a query against matching sources and publish the results."""
        with tracer.start_as_current_span(
            "Execute",
            attributes={
                "om.sdp.uuid": query.uuid,
                "om.sdp.type": query.type,
                "om.sdp.method": query.method.value,
                "om.sdp.scope": query.scope,
                "om.sdp.query": query.query,
            },
        ) as span:
            counts = await self._execute(query)
            span.set_attribute("om.sdp.numItems", counts["items"])
            span.set_attribute("om.sdp.numErrors", counts["errors"])

        state = "ERROR" if counts["errors"] and not counts["items"] else "COMPLETE"
        await self._publish(query.subject, {
            "response": {"responder": self.name, "state": state, "uuid": query.uuid},
        })

    async def _execute(self, query: Query) -> Dict[str, int]:
        counts = {"items": 0, "errors": 0}
        matches = self._matching(query)

        if not matches:
            counts["errors"] += 1
            err = QueryError(
                ErrorType.NOSCOPE,
                f"no matching sources found for type {query.type} in scope {query.scope}",
                scope=query.scope,
                item_type=query.type,
            )
            await self._publish(query.subject, {"error": err.to_dict()})
            return counts

        loop = asyncio.get_running_loop()
        outbox: asyncio.Queue = asyncio.Queue()

        def send(kind: str, payload: Dict[str, Any]):
            loop.call_soon_threadsafe(outbox.put_nowait, (kind, payload))

        async def forward():
            while True:
                entry = await outbox.get()
                if entry is None:
                    return
                kind, payload = entry
                counts["items" if kind == "item" else "errors"] += 1
                await self._publish(query.subject, {kind: payload})

        forwarder = asyncio.create_task(forward())

        streams = []
        futures = []
        for source, scope in matches:
            stream = QueryResultStream(
                lambda item: send("item", item.to_dict()),
                lambda err: send("error", err.to_dict()),
            )
            streams.append(stream)
            futures.append(loop.run_in_executor(self._pool, execute, source, query, scope, stream))

        timeout = None
        if query.deadline is not None:
            timeout = max(query.deadline - time.time(), 0)

        _, pending = await asyncio.wait(futures, timeout=timeout)

        # Let callbacks already queued by worker threads reach the outbox
        await asyncio.sleep(0)

        # Anything sent after this point belongs to a query nobody is waiting for
        for stream in streams:
            stream.close()

        if pending:
            logger.warning(f"Query {query.uuid} passed its deadline with {len(pending)} executions running")
            for _ in pending:
                err = QueryError(
                    ErrorType.TIMEOUT,
                    "query deadline exceeded",
                    scope=query.scope,
                    item_type=query.type,
                )
                outbox.put_nowait(("error", err.to_dict()))

        outbox.put_nowait(None)
        await forwarder
        return counts

    def __repr__(self) -> str:
        return f"<Engine {self.name} sources={len(self._sources)}>"


def execute(source: Source, query: Query, scope: str, stream: QueryResultStream):
    """Run one query method against one source, sending results to the stream."""
    try:
        if query.method == QueryMethod.GET:
            stream.send_item(source.get(scope, query.query, query.ignore_cache))
        elif query.method == QueryMethod.LIST:
            source.list_stream(scope, query.ignore_cache, stream)
        else:
            source.search_stream(scope, query.query, query.ignore_cache, stream)
    except QueryError as e:
        stream.send_error(e)
    except Exception as e:
        logger.error(f"Unexpected error running {query.method.value} on {source.name} in {scope}: {e}")
        stream.send_error(QueryError(
            ErrorType.OTHER, str(e), scope=scope, source_name=source.name, item_type=source.type,
        ))
