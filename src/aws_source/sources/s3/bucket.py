"""s3-bucket source.

Bucket names are global, so the source is registered once per account.
"""

from typing import Any, Dict, Iterator, Optional
import logging

from botocore.exceptions import ClientError

from ...sdp import ErrorType, Item, QueryError, QueryMethod, linked
from ..get_list import GetListSource
from ..limit_bucket import LimitBucket
from ..shared import parse_arn, tags_to_dict, to_attributes

logger = logging.getLogger(__name__)

ITEM_TYPE = 's3-bucket'

GLOBAL = 'global'

# Buckets in us-east-1 report an empty location constraint
DEFAULT_BUCKET_REGION = 'us-east-1'


def _bucket_details(client, bucket: Dict[str, Any]) -> Dict[str, Any]:
    name = bucket['Name']
    location = client.get_bucket_location(Bucket=name).get('LocationConstraint')

    try:
        tags = client.get_bucket_tagging(Bucket=name).get('TagSet', [])
    except ClientError as e:
        # Untagged buckets return NoSuchTagSet
        if e.response.get('Error', {}).get('Code') != 'NoSuchTagSet':
            logger.warning(f"Could not get tags for bucket {name}: {e}")
        tags = []

    return {
        **bucket,
        'LocationConstraint': location,
        'Region': location or DEFAULT_BUCKET_REGION,
        'TagSet': tags,
    }


def bucket_get_func(client, scope: str, query: str) -> Dict[str, Any]:
    return _bucket_details(client, {'Name': query})


def bucket_list_func(client, scope: str) -> Iterator[Dict[str, Any]]:
    for bucket in client.list_buckets().get('Buckets', []):
        try:
            yield _bucket_details(client, bucket)
        except ClientError as e:
            # Buckets can be deleted between listing and describing
            logger.warning(f"Skipping bucket {bucket.get('Name')}: {e}")


def bucket_search_func(client, scope: str, query: str) -> Iterator[Dict[str, Any]]:
    """
    Search by ARN. Bucket ARNs carry no account or region, e.g.
    arn:aws:s3:::my-bucket, so any S3 ARN is accepted.
    """
    arn = parse_arn(query)
    if arn.service != 's3':
        raise QueryError(ErrorType.NOTFOUND, f"'{query}' is not an S3 bucket ARN", scope=scope)
    # Object ARNs look like arn:aws:s3:::bucket/key
    return iter([bucket_get_func(client, scope, arn.resource.split('/', 1)[0])])


def bucket_item_mapper(scope: str, bucket: Dict[str, Any]) -> Item:
    item = Item(
        type=ITEM_TYPE,
        unique_attribute='name',
        scope=scope,
        attributes=to_attributes(bucket, exclude=['tagSet']),
        tags=tags_to_dict(bucket.get('TagSet')),
    )

    item.linked_item_queries.append(linked(
        'http', QueryMethod.GET, f"https://{bucket['Name']}.s3.amazonaws.com/", GLOBAL, in_=False, out=False,
    ))

    return item


def new_bucket_source(client, account_id: str, region: str, limit: Optional[LimitBucket] = None) -> GetListSource:
    return GetListSource(
        item_type=ITEM_TYPE,
        client=client,
        account_id=account_id,
        region=region,
        limit=limit,
        get_func=bucket_get_func,
        list_func=bucket_list_func,
        search_func=bucket_search_func,
        item_mapper=bucket_item_mapper,
    )
