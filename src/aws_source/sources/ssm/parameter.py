"""ssm-parameter source."""

from typing import Any, Dict, Iterator, List, Optional
import logging

from botocore.exceptions import ClientError

from ...sdp import ErrorType, Item, QueryError, QueryMethod, linked
from ..get_list import GetListSource
from ..limit_bucket import LimitBucket
from ..shared import paginate, parse_arn, parse_arn_in_scope, tags_to_dict, to_attributes

logger = logging.getLogger(__name__)

ITEM_TYPE = 'ssm-parameter'


def _with_tags(client, parameter: Dict[str, Any]) -> Dict[str, Any]:
    """Attach the parameter's tags, which describe_parameters doesn't return."""
    try:
        response = client.list_tags_for_resource(ResourceType='Parameter', ResourceId=parameter['Name'])
    except ClientError as e:
        logger.warning(f"Could not get tags for SSM parameter {parameter['Name']}: {e}")
        return parameter
    return {**parameter, 'Tags': response.get('TagList', [])}


def _describe(client, filters: List[Dict[str, Any]]) -> Iterator[Dict[str, Any]]:
    for page in paginate(client, 'describe_parameters', ParameterFilters=filters):
        for parameter in page.get('Parameters', []):
            yield _with_tags(client, parameter)


def parameter_name_from_arn(arn: str) -> str:
    """
    Get a parameter name from its ARN.

    Hierarchical names keep their leading slash, e.g.
    arn:aws:ssm:eu-west-2:123456789012:parameter/app/db/host -> /app/db/host
    """
    resource_id = parse_arn(arn).resource_id
    if '/' in resource_id:
        return '/' + resource_id
    return resource_id


def parameter_get_func(client, scope: str, query: str) -> Dict[str, Any]:
    filters = [{'Key': 'Name', 'Option': 'Equals', 'Values': [query]}]
    for parameter in _describe(client, filters):
        return parameter
    raise QueryError(ErrorType.NOTFOUND, f"SSM parameter {query} not found", scope=scope)


def parameter_list_func(client, scope: str) -> Iterator[Dict[str, Any]]:
    return _describe(client, [])


def parameter_search_func(client, scope: str, query: str) -> Iterator[Dict[str, Any]]:
    """Search by ARN, or by path returning every parameter below it."""
    if query.startswith('arn:'):
        parse_arn_in_scope(query, scope)
        return iter([parameter_get_func(client, scope, parameter_name_from_arn(query))])
    return _describe(client, [{'Key': 'Path', 'Option': 'Recursive', 'Values': [query]}])


def parameter_item_mapper(scope: str, parameter: Dict[str, Any]) -> Item:
    item = Item(
        type=ITEM_TYPE,
        unique_attribute='name',
        scope=scope,
        attributes=to_attributes(parameter, exclude=['tags']),
        tags=tags_to_dict(parameter.get('Tags')),
    )

    if parameter.get('Type') == 'SecureString' and parameter.get('KeyId'):
        # Losing the key makes the value unreadable
        item.linked_item_queries.append(linked(
            'kms-key', QueryMethod.GET, parameter['KeyId'], scope, in_=True, out=False,
        ))

    return item


def new_parameter_source(client, account_id: str, region: str, limit: Optional[LimitBucket] = None) -> GetListSource:
    return GetListSource(
        item_type=ITEM_TYPE,
        client=client,
        account_id=account_id,
        region=region,
        limit=limit,
        get_func=parameter_get_func,
        list_func=parameter_list_func,
        search_func=parameter_search_func,
        item_mapper=parameter_item_mapper,
    )
