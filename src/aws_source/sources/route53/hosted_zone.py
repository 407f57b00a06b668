"""route53-hosted-zone source."""

from typing import Any, Dict, Iterator, Optional

from ...sdp import Item, QueryMethod, linked
from ..get_list import GetListSource
from ..limit_bucket import LimitBucket
from ..shared import paginate, tags_to_dict, to_attributes

ITEM_TYPE = 'route53-hosted-zone'

ID_PREFIX = '/hostedzone/'


def strip_zone_id(zone_id: str) -> str:
    """/hostedzone/Z123 -> Z123"""
    if zone_id.startswith(ID_PREFIX):
        return zone_id[len(ID_PREFIX):]
    return zone_id


def hosted_zone_get_func(client, scope: str, query: str) -> Dict[str, Any]:
    return client.get_hosted_zone(Id=query)['HostedZone']


def hosted_zone_list_func(client, scope: str) -> Iterator[Dict[str, Any]]:
    for page in paginate(client, 'list_hosted_zones'):
        yield from page.get('HostedZones', [])


def hosted_zone_list_tags(client, zone: Dict[str, Any]) -> Dict[str, str]:
    response = client.list_tags_for_resource(ResourceType='hostedzone', ResourceId=strip_zone_id(zone['Id']))
    return tags_to_dict(response.get('ResourceTagSet', {}).get('Tags'))


def hosted_zone_item_mapper(scope: str, zone: Dict[str, Any]) -> Item:
    attributes = to_attributes(zone)
    # Other resources refer to zones without the prefix
    attributes['id'] = strip_zone_id(zone['Id'])

    item = Item(
        type=ITEM_TYPE,
        unique_attribute='id',
        scope=scope,
        attributes=attributes,
    )

    # Changing the zone affects its records
    item.linked_item_queries.append(linked(
        'route53-resource-record-set', QueryMethod.SEARCH, attributes['id'], scope, in_=False, out=True,
    ))

    return item


def new_hosted_zone_source(client, account_id: str, region: str, limit: Optional[LimitBucket] = None) -> GetListSource:
    return GetListSource(
        item_type=ITEM_TYPE,
        client=client,
        account_id=account_id,
        region=region,
        limit=limit,
        get_func=hosted_zone_get_func,
        list_func=hosted_zone_list_func,
        list_tags_func=hosted_zone_list_tags,
        item_mapper=hosted_zone_item_mapper,
    )
