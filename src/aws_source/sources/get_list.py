"""Source for APIs with separate Get and List calls that return full items."""

from typing import Any, Callable, Dict, Iterable, Iterator, List, Optional
import logging

from botocore.exceptions import ClientError

from ..sdp import ErrorType, Item, QueryError
from .base import Source

logger = logging.getLogger(__name__)

# Scope used for resources that are not tied to an account or region
GLOBAL_SCOPE = "aws"


class GetListSource(Source):
    """
    Source for APIs where both Get and List return the full resource.

    Args:
        get_func: Fetches one AWS item, (client, scope, query) -> item
        list_func: Fetches all AWS items, (client, scope) -> iterable of items
        item_mapper: Converts an AWS item to an Item, or None to skip it
        search_func: Optional search, (client, scope, query) -> iterable of
            items. Defaults to searching by ARN
        list_tags_func: Optional tag lookup, (client, aws_item) -> dict, for
            APIs that don't return tags with the item
        support_global_resources: Also answer queries for the "aws" scope
        disable_list: LIST returns nothing, for resources that can only be
            found through their parent
    """

    def __init__(
        self,
        item_type: str,
        client: Any,
        account_id: str,
        region: str,
        get_func: Callable[[Any, str, str], Any],
        list_func: Callable[[Any, str], Iterable[Any]],
        item_mapper: Callable[[str, Any], Optional[Item]],
        search_func: Optional[Callable[[Any, str, str], Iterable[Any]]] = None,
        list_tags_func: Optional[Callable[[Any, Any], Dict[str, str]]] = None,
        support_global_resources: bool = False,
        disable_list: bool = False,
        **kwargs,
    ):
        super().__init__(item_type, client, account_id, region, **kwargs)
        self.get_func = get_func
        self.list_func = list_func
        self.item_mapper = item_mapper
        self.search_func = search_func
        self.list_tags_func = list_tags_func
        self.support_global_resources = support_global_resources
        self.disable_list = disable_list

    def scopes(self) -> List[str]:
        scopes = super().scopes()
        if self.support_global_resources:
            scopes.append(GLOBAL_SCOPE)
        return scopes

    def validate(self):
        super().validate()
        if self.get_func is None:
            raise ValueError("get_func is None")
        if self.list_func is None:
            raise ValueError("list_func is None")
        if self.item_mapper is None:
            raise ValueError("item_mapper is None")

    def _map(self, scope: str, aws_item: Any) -> Optional[Item]:
        item = self.item_mapper(scope, aws_item)
        if item is not None and self.list_tags_func is not None:
            try:
                item.tags = self.list_tags_func(self.client, aws_item)
            except ClientError as e:
                logger.warning(f"Could not get tags for {self.item_type} {item.unique_attribute_value()}: {e}")
        return item

    def _get(self, scope: str, query: str) -> Item:
        self.wait_for_limit()
        aws_item = self.get_func(self.client, scope, query)
        item = self._map(scope, aws_item)
        if item is None:
            raise QueryError(ErrorType.NOTFOUND, f"{self.item_type} {query} not found", scope=scope)
        return item

    def _map_all(self, scope: str, aws_items: Iterable[Any]) -> Iterator[Item]:
        for aws_item in aws_items:
            try:
                item = self._map(scope, aws_item)
            except (KeyError, ValueError) as e:
                logger.warning(f"Skipping {self.item_type} that could not be mapped: {e}")
                continue
            if item is not None:
                yield item

    def _list(self, scope: str) -> Iterator[Item]:
        if self.disable_list:
            return
        self.wait_for_limit()
        yield from self._map_all(scope, self.list_func(self.client, scope))

    def _search(self, scope: str, query: str) -> Iterator[Item]:
        if self.search_func is None:
            yield from self._search_arn(scope, query)
            return
        self.wait_for_limit()
        yield from self._map_all(scope, self.search_func(self.client, scope, query))
