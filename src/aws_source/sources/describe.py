"""Source for APIs that use a single Describe call for both get and list."""

from typing import Any, Callable, Dict, Iterator, List, Optional
import logging

from ..sdp import ErrorType, Item, QueryError
from .base import Source

logger = logging.getLogger(__name__)

DescribeFunc = Callable[[Any, Dict[str, Any]], Dict[str, Any]]
OutputMapper = Callable[[str, Dict[str, Any]], List[Item]]


class DescribeOnlySource(Source):
    """
    Source for services like EC2 where describe_* returns full items and
    filtering by ID turns a list into a get.

    Args:
        describe_func: Calls the describe API, e.g. lambda c, i: c.describe_vpcs(**i)
        input_mapper_get: Builds the describe input for a single ID
        input_mapper_list: Builds the describe input for listing everything
        output_mapper: Converts a describe response page into items
        paginator: boto3 paginator operation name, if the API paginates
        input_mapper_search: Optional custom search input, used instead of ARN search
    """

    def __init__(
        self,
        item_type: str,
        client: Any,
        account_id: str,
        region: str,
        describe_func: DescribeFunc,
        input_mapper_get: Callable[[str, str], Dict[str, Any]],
        output_mapper: OutputMapper,
        input_mapper_list: Optional[Callable[[str], Dict[str, Any]]] = None,
        paginator: Optional[str] = None,
        input_mapper_search: Optional[Callable[[str, str], Dict[str, Any]]] = None,
        **kwargs,
    ):
        super().__init__(item_type, client, account_id, region, **kwargs)
        self.describe_func = describe_func
        self.input_mapper_get = input_mapper_get
        self.input_mapper_list = input_mapper_list or (lambda scope: {})
        self.input_mapper_search = input_mapper_search
        self.output_mapper = output_mapper
        self.paginator = paginator

    def validate(self):
        super().validate()
        if self.describe_func is None:
            raise ValueError("describe_func is None")
        if self.input_mapper_get is None:
            raise ValueError("input_mapper_get is None")
        if self.output_mapper is None:
            raise ValueError("output_mapper is None")

    def _describe(self, scope: str, params: Dict[str, Any]) -> Iterator[Item]:
        if self.paginator:
            pages = iter(self.client.get_paginator(self.paginator).paginate(**params))
            while True:
                # Each page is a separate API call
                self.wait_for_limit()
                try:
                    page = next(pages)
                except StopIteration:
                    return
                yield from self.output_mapper(scope, page)
        else:
            self.wait_for_limit()
            output = self.describe_func(self.client, params)
            yield from self.output_mapper(scope, output)

    def _get(self, scope: str, query: str) -> Item:
        params = self.input_mapper_get(scope, query)
        self.wait_for_limit()
        output = self.describe_func(self.client, params)
        items = self.output_mapper(scope, output)

        if not items:
            raise QueryError(
                ErrorType.NOTFOUND,
                f"{self.item_type} {query} not found",
                scope=scope,
            )
        if len(items) > 1:
            raise QueryError(
                ErrorType.OTHER,
                f"Request returned {len(items)} items, expected 1",
                scope=scope,
            )
        return items[0]

    def _list(self, scope: str) -> Iterator[Item]:
        yield from self._describe(scope, self.input_mapper_list(scope))

    def _search(self, scope: str, query: str) -> Iterator[Item]:
        if self.input_mapper_search is not None:
            yield from self._describe(scope, self.input_mapper_search(scope, query))
            return

        yield from self._search_arn(scope, query)
