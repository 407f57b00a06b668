"""sqs-queue source. Queues are identified by their URL."""

from typing import Any, Dict, List, Optional
import json
import logging

from botocore.exceptions import ClientError

from ...sdp import ErrorType, Item, QueryError, QueryMethod, linked
from ..always_get import AlwaysGetSource
from ..limit_bucket import LimitBucket
from ..shared import arn_search_link, parse_arn, parse_arn_in_scope, to_attributes

logger = logging.getLogger(__name__)

ITEM_TYPE = 'sqs-queue'


def queue_url_from_arn(arn: str) -> str:
    """
    Build a queue URL from a queue ARN.

    arn:aws:sqs:eu-west-2:123456789012:orders -> https://sqs.eu-west-2.amazonaws.com/123456789012/orders
    """
    parsed = parse_arn(arn)
    if parsed.service != 'sqs':
        raise ValueError(f"'{arn}' is not an SQS queue ARN")
    return f"https://sqs.{parsed.region}.amazonaws.com/{parsed.account_id}/{parsed.resource}"


def queue_search_input(scope: str, query: str) -> Dict[str, str]:
    """Get input for a queue ARN, which must belong to the scope being searched."""
    parse_arn_in_scope(query, scope)
    return {'QueueUrl': queue_url_from_arn(query)}


def _queue_links(attributes: Dict[str, str], scope: str) -> List:
    links = []

    redrive = attributes.get('RedrivePolicy')
    if redrive:
        try:
            target = json.loads(redrive).get('deadLetterTargetArn')
        except ValueError:
            target = None
        link = arn_search_link(ITEM_TYPE, target, in_=False, out=True)
        if link is not None:
            links.append(link)

    if attributes.get('KmsMasterKeyId'):
        links.append(linked('kms-key', QueryMethod.GET, attributes['KmsMasterKeyId'], scope, in_=True, out=False))

    return links


def queue_get_func(client, scope: str, get_input: Dict[str, Any]) -> Item:
    queue_url = get_input['QueueUrl']
    response = client.get_queue_attributes(QueueUrl=queue_url, AttributeNames=['All'])
    queue_attributes = response.get('Attributes')
    if not queue_attributes:
        raise QueryError(ErrorType.NOTFOUND, "get queue attributes response was empty", scope=scope)

    try:
        tags = client.list_queue_tags(QueueUrl=queue_url).get('Tags', {})
    except ClientError as e:
        logger.warning(f"Could not get tags for queue {queue_url}: {e}")
        tags = {}

    attributes = to_attributes(queue_attributes)
    attributes['queueUrl'] = queue_url

    return Item(
        type=ITEM_TYPE,
        unique_attribute='queueUrl',
        scope=scope,
        attributes=attributes,
        tags=tags,
        linked_item_queries=_queue_links(queue_attributes, scope),
    )


def queue_list_output_mapper(output: Dict[str, Any], list_input: Dict[str, Any]) -> List[Dict[str, Any]]:
    return [{'QueueUrl': url} for url in output.get('QueueUrls', [])]


def new_queue_source(client, account_id: str, region: str, limit: Optional[LimitBucket] = None) -> AlwaysGetSource:
    return AlwaysGetSource(
        item_type=ITEM_TYPE,
        client=client,
        account_id=account_id,
        region=region,
        limit=limit,
        list_operation='list_queues',
        list_output_mapper=queue_list_output_mapper,
        get_func=queue_get_func,
        get_input_mapper=lambda scope, query: {'QueueUrl': query},
        search_get_input_mapper=queue_search_input,
    )
