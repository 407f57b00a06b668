"""apigateway-rest-api source."""

from typing import Any, Dict, Iterator, Optional
import json

from ...sdp import Item, QueryMethod, linked
from ..get_list import GetListSource
from ..limit_bucket import LimitBucket
from ..shared import paginate, to_attributes

ITEM_TYPE = 'apigateway-rest-api'


def _all_rest_apis(client) -> Iterator[Dict[str, Any]]:
    for page in paginate(client, 'get_rest_apis'):
        yield from page.get('items', [])


def rest_api_get_func(client, scope: str, query: str) -> Dict[str, Any]:
    return client.get_rest_api(restApiId=query)


def rest_api_list_func(client, scope: str) -> Iterator[Dict[str, Any]]:
    return _all_rest_apis(client)


def rest_api_search_func(client, scope: str, query: str) -> Iterator[Dict[str, Any]]:
    """REST APIs whose name matches the query exactly."""
    return (api for api in _all_rest_apis(client) if api.get('name') == query)


def rest_api_item_mapper(scope: str, rest_api: Dict[str, Any]) -> Item:
    attributes = to_attributes(rest_api, exclude=['tags'])

    if rest_api.get('policy'):
        # The API returns the policy as an escaped JSON string
        try:
            attributes['policyDocument'] = json.loads(rest_api['policy'].replace('\\"', '"'))
        except ValueError as e:
            raise ValueError(f"could not parse policy document for REST API {rest_api.get('id')}: {e}") from e

    item = Item(
        type=ITEM_TYPE,
        unique_attribute='id',
        scope=scope,
        attributes=attributes,
        tags=dict(rest_api.get('tags') or {}),
    )

    endpoint_config = rest_api.get('endpointConfiguration') or {}
    for vpc_endpoint_id in endpoint_config.get('vpcEndpointIds') or []:
        item.linked_item_queries.append(linked(
            'ec2-vpc-endpoint', QueryMethod.GET, vpc_endpoint_id, scope, in_=True, out=False,
        ))

    if rest_api.get('rootResourceId'):
        item.linked_item_queries.append(linked(
            'apigateway-resource', QueryMethod.GET,
            f"{rest_api['id']}/{rest_api['rootResourceId']}", scope, in_=True, out=True,
        ))

    # Changing the API affects all of its resources
    item.linked_item_queries.append(linked(
        'apigateway-resource', QueryMethod.SEARCH, rest_api['id'], scope, in_=False, out=True,
    ))

    return item


def new_rest_api_source(client, account_id: str, region: str, limit: Optional[LimitBucket] = None) -> GetListSource:
    return GetListSource(
        item_type=ITEM_TYPE,
        client=client,
        account_id=account_id,
        region=region,
        limit=limit,
        get_func=rest_api_get_func,
        list_func=rest_api_list_func,
        search_func=rest_api_search_func,
        item_mapper=rest_api_item_mapper,
    )
