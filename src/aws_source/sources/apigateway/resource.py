"""apigateway-resource source.

Resources only exist inside a REST API, so they are found with a GET for
"{restApiId}/{resourceId}" or a SEARCH for all resources of a REST API ID.
"""

from typing import Any, Dict, Iterator, Optional

from ...sdp import ErrorType, Item, QueryError, QueryMethod, linked
from ..get_list import GetListSource
from ..limit_bucket import LimitBucket
from ..shared import paginate, to_attributes

ITEM_TYPE = 'apigateway-resource'


def _split_query(scope: str, query: str):
    parts = query.split('/')
    if len(parts) != 2 or not all(parts):
        raise QueryError(
            ErrorType.NOTFOUND,
            f"query must be in the format restApiId/resourceId, got {query!r}",
            scope=scope,
        )
    return parts[0], parts[1]


def resource_get_func(client, scope: str, query: str) -> Dict[str, Any]:
    rest_api_id, resource_id = _split_query(scope, query)
    resource = client.get_resource(restApiId=rest_api_id, resourceId=resource_id)
    return {**resource, 'restApiId': rest_api_id}


def resource_search_func(client, scope: str, query: str) -> Iterator[Dict[str, Any]]:
    """All resources belonging to the REST API with ID query."""
    for page in paginate(client, 'get_resources', restApiId=query, embed=['methods']):
        for resource in page.get('items', []):
            yield {**resource, 'restApiId': query}


def resource_item_mapper(scope: str, resource: Dict[str, Any]) -> Item:
    attributes = to_attributes(resource)
    attributes['restApiResourceId'] = f"{resource['restApiId']}/{resource['id']}"

    item = Item(
        type=ITEM_TYPE,
        unique_attribute='restApiResourceId',
        scope=scope,
        attributes=attributes,
    )

    item.linked_item_queries.append(linked(
        'apigateway-rest-api', QueryMethod.GET, resource['restApiId'], scope, in_=True, out=False,
    ))

    if resource.get('parentId'):
        item.linked_item_queries.append(linked(
            ITEM_TYPE, QueryMethod.GET, f"{resource['restApiId']}/{resource['parentId']}", scope,
            in_=True, out=False,
        ))

    return item


def new_resource_source(client, account_id: str, region: str, limit: Optional[LimitBucket] = None) -> GetListSource:
    return GetListSource(
        item_type=ITEM_TYPE,
        client=client,
        account_id=account_id,
        region=region,
        limit=limit,
        get_func=resource_get_func,
        list_func=lambda c, scope: [],
        search_func=resource_search_func,
        item_mapper=resource_item_mapper,
        disable_list=True,
    )
