"""Source for APIs whose List call only returns identifiers."""

from concurrent.futures import ThreadPoolExecutor, as_completed
from typing import Any, Callable, Dict, Iterator, List, Optional
import logging

from ..sdp import Item
from .base import Source
from .shared import parse_arn

logger = logging.getLogger(__name__)

DEFAULT_MAX_PARALLEL = 10


class AlwaysGetSource(Source):
    """
    Source for APIs where List returns too little to build an item, so every
    listed identifier is passed to Get. EKS list_clusters, which returns only
    cluster names, is the typical case.

    Args:
        list_operation: Paginated boto3 operation name, e.g. 'list_clusters'
        list_input: Static input for the list operation
        list_output_mapper: Converts a list page into Get inputs, (output, input) -> inputs
        get_func: Fetches and maps one item, (client, scope, get_input) -> Item
        get_input_mapper: Converts a GET query into a Get input, (scope, query) -> input
        search_input_mapper: Converts a SEARCH query into a list input
        search_get_input_mapper: Converts a SEARCH query into a Get input
        always_search_arns: Treat ARN queries as ARN searches even when a
            custom search mapper is set
        max_parallel: Gets run in parallel for a single List
        disable_list: LIST returns nothing, SEARCH is unaffected
    """

    def __init__(
        self,
        item_type: str,
        client: Any,
        account_id: str,
        region: str,
        list_operation: str,
        list_output_mapper: Callable[[Dict[str, Any], Dict[str, Any]], List[Any]],
        get_func: Callable[[Any, str, Any], Item],
        get_input_mapper: Callable[[str, str], Any],
        list_input: Optional[Dict[str, Any]] = None,
        search_input_mapper: Optional[Callable[[str, str], Dict[str, Any]]] = None,
        search_get_input_mapper: Optional[Callable[[str, str], Any]] = None,
        always_search_arns: bool = False,
        max_parallel: int = DEFAULT_MAX_PARALLEL,
        disable_list: bool = False,
        **kwargs,
    ):
        super().__init__(item_type, client, account_id, region, **kwargs)
        self.list_operation = list_operation
        self.list_input = list_input or {}
        self.list_output_mapper = list_output_mapper
        self.get_func = get_func
        self.get_input_mapper = get_input_mapper
        self.search_input_mapper = search_input_mapper
        self.search_get_input_mapper = search_get_input_mapper
        self.always_search_arns = always_search_arns
        self.max_parallel = max_parallel or DEFAULT_MAX_PARALLEL
        self.disable_list = disable_list

    def validate(self):
        super().validate()
        if not self.list_operation:
            raise ValueError("list_operation is blank")
        if self.list_output_mapper is None:
            raise ValueError("list_output_mapper is None")
        if self.get_func is None:
            raise ValueError("get_func is None")
        if self.get_input_mapper is None:
            raise ValueError("get_input_mapper is None")
        if self.search_input_mapper is not None and self.search_get_input_mapper is not None:
            raise ValueError("search_input_mapper and search_get_input_mapper are mutually exclusive")

    def _get(self, scope: str, query: str) -> Item:
        self.wait_for_limit()
        return self.get_func(self.client, scope, self.get_input_mapper(scope, query))

    def _get_for_list(self, scope: str, get_input: Any) -> Optional[Item]:
        try:
            self.wait_for_limit()
            return self.get_func(self.client, scope, get_input)
        except Exception as e:
            logger.error(f"Error running Get for {self.item_type} list item {get_input} in {scope}: {e}")
            return None

    def _pages(self, params: Dict[str, Any]) -> Iterator[Dict[str, Any]]:
        if not self.client.can_paginate(self.list_operation):
            self.wait_for_limit()
            yield getattr(self.client, self.list_operation)(**params)
            return

        pages = iter(self.client.get_paginator(self.list_operation).paginate(**params))

        while True:
            self.wait_for_limit()
            try:
                page = next(pages)
            except StopIteration:
                return
            yield page

    def _list_internal(self, scope: str, params: Dict[str, Any]) -> Iterator[Item]:
        with ThreadPoolExecutor(max_workers=self.max_parallel, thread_name_prefix=self.item_type) as pool:
            pending = set()
            for page in self._pages(params):
                for get_input in self.list_output_mapper(page, params):
                    pending.add(pool.submit(self._get_for_list, scope, get_input))

                # Stream whatever has finished before reading the next page
                done = {future for future in pending if future.done()}
                pending -= done
                for future in done:
                    item = future.result()
                    if item is not None:
                        yield item

            for future in as_completed(pending):
                item = future.result()
                if item is not None:
                    yield item

    def _list(self, scope: str) -> Iterator[Item]:
        if self.disable_list:
            return
        yield from self._list_internal(scope, self.list_input)

    def _search(self, scope: str, query: str) -> Iterator[Item]:
        if self.search_input_mapper is None and self.search_get_input_mapper is None:
            yield from self._search_arn(scope, query)
            return

        if self.always_search_arns:
            try:
                parse_arn(query)
            except ValueError:
                pass
            else:
                yield from self._search_arn(scope, query)
                return

        if self.search_input_mapper is not None:
            yield from self._list_internal(scope, self.search_input_mapper(scope, query))
        else:
            get_input = self.search_get_input_mapper(scope, query)
            self.wait_for_limit()
            yield self.get_func(self.client, scope, get_input)
