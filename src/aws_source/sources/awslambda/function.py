"""lambda-function source."""

from typing import Any, Dict, Iterator, List, Optional

from ...sdp import Health, Item, LinkedItemQuery, QueryMethod, linked
from ..get_list import GetListSource
from ..limit_bucket import LimitBucket
from ..shared import arn_search_link, paginate, parse_arn, to_attributes

ITEM_TYPE = 'lambda-function'

GLOBAL = 'global'

STATE_HEALTH = {
    'Pending': Health.PENDING,
    'Active': Health.OK,
    'Failed': Health.ERROR,
}

# Dead letter targets are either queues or topics
DEAD_LETTER_TYPES = {
    'sqs': 'sqs-queue',
    'sns': 'sns-topic',
}


def function_get_func(client, scope: str, query: str) -> Dict[str, Any]:
    response = client.get_function(FunctionName=query)
    return {
        'Configuration': response.get('Configuration', {}),
        'Code': response.get('Code'),
        'Concurrency': response.get('Concurrency'),
        'Tags': response.get('Tags', {}),
    }


def function_list_func(client, scope: str) -> Iterator[Dict[str, Any]]:
    for page in paginate(client, 'list_functions'):
        for configuration in page.get('Functions', []):
            yield {'Configuration': configuration}


def _function_links(function: Dict[str, Any], scope: str) -> List[LinkedItemQuery]:
    configuration = function['Configuration']
    links = []

    code = function.get('Code') or {}
    if code.get('Location'):
        links.append(linked('http', QueryMethod.GET, code['Location'], GLOBAL, in_=False, out=False))

    candidates = []
    if configuration.get('Role'):
        candidates.append(arn_search_link('iam-role', configuration['Role']))
    if configuration.get('KMSKeyArn'):
        candidates.append(arn_search_link('kms-key', configuration['KMSKeyArn']))

    for layer in configuration.get('Layers', []):
        if layer.get('Arn'):
            candidates.append(arn_search_link('lambda-layer-version', layer['Arn']))

    for file_system in configuration.get('FileSystemConfigs', []):
        if file_system.get('Arn'):
            candidates.append(arn_search_link('efs-access-point', file_system['Arn']))

    target = (configuration.get('DeadLetterConfig') or {}).get('TargetArn')
    if target:
        try:
            service = parse_arn(target).service
        except ValueError:
            service = ''
        if service in DEAD_LETTER_TYPES:
            candidates.append(arn_search_link(DEAD_LETTER_TYPES[service], target, in_=False, out=True))

    links.extend(link for link in candidates if link is not None)

    vpc_config = configuration.get('VpcConfig') or {}
    for group_id in vpc_config.get('SecurityGroupIds', []):
        links.append(linked('ec2-security-group', QueryMethod.GET, group_id, scope, in_=True, out=False))
    for subnet_id in vpc_config.get('SubnetIds', []):
        links.append(linked('ec2-subnet', QueryMethod.GET, subnet_id, scope, in_=True, out=False))
    if vpc_config.get('VpcId'):
        links.append(linked('ec2-vpc', QueryMethod.GET, vpc_config['VpcId'], scope, in_=True, out=False))

    return links


def function_item_mapper(scope: str, function: Dict[str, Any]) -> Item:
    configuration = function['Configuration']

    attributes = to_attributes(function, exclude=['tags'])
    attributes['name'] = configuration['FunctionName']

    return Item(
        type=ITEM_TYPE,
        unique_attribute='name',
        scope=scope,
        attributes=attributes,
        tags=dict(function.get('Tags') or {}),
        health=STATE_HEALTH.get(configuration.get('State', '')),
        linked_item_queries=_function_links(function, scope),
    )


def new_function_source(client, account_id: str, region: str, limit: Optional[LimitBucket] = None) -> GetListSource:
    return GetListSource(
        item_type=ITEM_TYPE,
        client=client,
        account_id=account_id,
        region=region,
        limit=limit,
        get_func=function_get_func,
        list_func=function_list_func,
        item_mapper=function_item_mapper,
    )
