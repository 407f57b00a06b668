"""Base class for all AWS sources."""

from abc import ABC, abstractmethod
from typing import Any, Iterator, List, Optional
import logging

from opentelemetry import trace

from ..sdp import ErrorType, Item, QueryError, QueryMethod
from ..stream import QueryResultStream
from .cache import DEFAULT_CACHE_DURATION, Cache, CacheKey
from .limit_bucket import LimitBucket
from .shared import format_scope, parse_arn_in_scope, wrap_aws_error

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)

# Errors that won't be fixed by retrying, so they are safe to cache
CACHEABLE_ERRORS = (ErrorType.NOTFOUND, ErrorType.NOSCOPE)


class Source(ABC):
    """
    Common behaviour for sources: scopes, caching, rate limiting, error
    wrapping and streaming.

    Subclasses implement _get, _list and _search against the AWS API.
    """

    def __init__(
        self,
        item_type: str,
        client: Any,
        account_id: str,
        region: str,
        limit: Optional[LimitBucket] = None,
        cache_duration: float = DEFAULT_CACHE_DURATION,
    ):
        self.item_type = item_type
        self.client = client
        self.account_id = account_id
        self.region = region
        self.limit = limit
        self.cache_duration = cache_duration
        self.cache = Cache()

    @property
    def type(self) -> str:
        return self.item_type

    @property
    def name(self) -> str:
        return f"{self.item_type}-source"

    def scopes(self) -> List[str]:
        """Scopes this source can find items for, in the format {accountID}.{region}"""
        return [format_scope(self.account_id, self.region)]

    def has_scope(self, scope: str) -> bool:
        return scope in self.scopes()

    def weight(self) -> int:
        """Priority of items from this source when two sources return the same item."""
        return 100

    def validate(self):
        """Raise ValueError if the source is not set up correctly."""
        if not self.item_type:
            raise ValueError("item_type is blank")
        if self.client is None:
            raise ValueError("client is None")

    def wait_for_limit(self):
        if self.limit is not None:
            self.limit.wait()

    def _check_scope(self, scope: str):
        if not self.has_scope(scope):
            raise QueryError(
                ErrorType.NOSCOPE,
                f"requested scope {scope} does not match source scope {self.scopes()[0]}",
                scope=scope,
                source_name=self.name,
                item_type=self.item_type,
            )

    def _search_arn(self, scope: str, query: str) -> Iterator[Item]:
        """Search by ARN: check the ARN belongs to this scope and get its resource."""
        arn = parse_arn_in_scope(query, scope)
        yield self._get(scope, arn.resource_id)

    def _process_error(self, err: Exception, scope: str, key: Optional[CacheKey] = None) -> QueryError:
        """Wrap an error for the caller and cache it if retrying won't help."""
        if isinstance(err, ValueError):
            query_err = QueryError(ErrorType.OTHER, str(err), scope=scope)
        else:
            query_err = wrap_aws_error(err, scope)
        query_err.source_name = query_err.source_name or self.name
        query_err.item_type = query_err.item_type or self.item_type
        query_err.scope = query_err.scope or scope

        if key is not None and query_err.error_type in CACHEABLE_ERRORS:
            self.cache.store_error(query_err, self.cache_duration, key)

        return query_err

    # Implemented by subclasses

    @abstractmethod
    def _get(self, scope: str, query: str) -> Item:
        ...

    @abstractmethod
    def _list(self, scope: str) -> Iterator[Item]:
        ...

    @abstractmethod
    def _search(self, scope: str, query: str) -> Iterator[Item]:
        ...

    # Public interface

    def get(self, scope: str, query: str, ignore_cache: bool = False) -> Item:
        """
        Get a single item by its unique attribute value.

        Raises:
            QueryError: If the item can't be found or the request fails
        """
        self._check_scope(scope)
        try:
            self.validate()
        except ValueError as e:
            raise self._process_error(e, scope)

        hit, key, items, err = self.cache.lookup(
            self.name, QueryMethod.GET, scope, self.item_type, query, ignore_cache
        )
        if hit:
            if err is not None:
                raise err
            if items:
                return items[0]

        with tracer.start_as_current_span(
            f"{self.name}.get",
            attributes={"om.source.scope": scope, "om.source.query": query},
        ):
            try:
                item = self._get(scope, query)
            except Exception as e:
                raise self._process_error(e, scope, key)

        self.cache.store_items([item], self.cache_duration, key)
        return item

    def list_stream(self, scope: str, ignore_cache: bool, stream: QueryResultStream):
        """List all items in a scope, sending each to the stream."""
        try:
            self._check_scope(scope)
            self.validate()
        except (QueryError, ValueError) as e:
            stream.send_error(self._process_error(e, scope))
            return

        self._run_stream(QueryMethod.LIST, scope, "", ignore_cache, stream, lambda: self._list(scope))

    def search_stream(self, scope: str, query: str, ignore_cache: bool, stream: QueryResultStream):
        """Search for items in a scope, sending each to the stream."""
        try:
            self._check_scope(scope)
            self.validate()
        except (QueryError, ValueError) as e:
            stream.send_error(self._process_error(e, scope))
            return

        self._run_stream(QueryMethod.SEARCH, scope, query, ignore_cache, stream, lambda: self._search(scope, query))

    def _run_stream(self, method, scope, query, ignore_cache, stream, produce):
        hit, key, cached, err = self.cache.lookup(
            self.name, method, scope, self.item_type, query, ignore_cache
        )
        if hit:
            if err is not None:
                stream.send_error(err)
            for item in cached:
                stream.send_item(item)
            return

        items = []
        with tracer.start_as_current_span(
            f"{self.name}.{method.value.lower()}",
            attributes={"om.source.scope": scope, "om.source.query": query},
        ) as span:
            try:
                for item in produce():
                    items.append(item)
                    stream.send_item(item)
            except Exception as e:
                stream.send_error(self._process_error(e, scope, key))
                return
            span.set_attribute("om.source.numItems", len(items))

        self.cache.store_items(items, self.cache_duration, key)

    def list(self, scope: str, ignore_cache: bool = False) -> List[Item]:
        """List all items in a scope. Raises the first error encountered."""
        return self._collect(lambda stream: self.list_stream(scope, ignore_cache, stream))

    def search(self, scope: str, query: str, ignore_cache: bool = False) -> List[Item]:
        """Search for items in a scope. Raises the first error encountered."""
        return self._collect(lambda stream: self.search_stream(scope, query, ignore_cache, stream))

    def _collect(self, run) -> List[Item]:
        items: List[Item] = []
        errors: List[QueryError] = []
        stream = QueryResultStream(items.append, errors.append)
        run(stream)
        stream.close()
        if errors:
            raise errors[0]
        return items

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__} {self.name} {self.scopes()}>"
