"""Tests for the account-wide sources: Route 53 hosted zones, S3 buckets and IAM roles."""

from unittest.mock import MagicMock

import pytest
from botocore.exceptions import ClientError

from aws_source.sdp import ErrorType, QueryError
from aws_source.sources.iam import new_role_source
from aws_source.sources.iam.role import ROLE_CACHE_DURATION
from aws_source.sources.route53 import new_hosted_zone_source
from aws_source.sources.route53.hosted_zone import strip_zone_id
from aws_source.sources.s3 import new_bucket_source

ACCOUNT = '123456789012'
REGION = 'eu-west-2'
SCOPE = f'{ACCOUNT}.{REGION}'


def links(item):
    return {
        (q.query.type, q.query.method.value, q.query.query, q.query.scope)
        for q in item.linked_item_queries
    }


def paginated_client(pages_by_operation):
    """Client whose paginators return the given pages for each operation."""
    client = MagicMock()
    client.can_paginate.return_value = True

    def get_paginator(operation):
        paginator = MagicMock()
        paginator.paginate.side_effect = lambda **kwargs: iter(pages_by_operation[operation])
        return paginator

    client.get_paginator.side_effect = get_paginator
    return client


def test_strip_zone_id():
    assert strip_zone_id('/hostedzone/Z0123') == 'Z0123'
    assert strip_zone_id('Z0123') == 'Z0123'


def test_hosted_zone_list():
    client = paginated_client({
        'list_hosted_zones': [
            {'HostedZones': [{'Id': '/hostedzone/Z1', 'Name': 'example.com.'}]},
            {'HostedZones': [{'Id': '/hostedzone/Z2', 'Name': 'internal.'}]},
        ],
    })
    client.list_tags_for_resource.return_value = {
        'ResourceTagSet': {'Tags': [{'Key': 'env', 'Value': 'prod'}]},
    }
    source = new_hosted_zone_source(client, ACCOUNT, REGION)

    items = source.list(SCOPE)

    assert [i.unique_attribute_value() for i in items] == ['Z1', 'Z2']
    assert items[0].tags == {'env': 'prod'}
    assert links(items[0]) == {('route53-resource-record-set', 'SEARCH', 'Z1', SCOPE)}
    client.list_tags_for_resource.assert_any_call(ResourceType='hostedzone', ResourceId='Z1')


def test_hosted_zone_get_keeps_item_when_tags_fail():
    client = MagicMock()
    client.get_hosted_zone.return_value = {'HostedZone': {'Id': '/hostedzone/Z1', 'Name': 'example.com.'}}
    client.list_tags_for_resource.side_effect = ClientError(
        {'Error': {'Code': 'AccessDenied', 'Message': 'denied'}}, 'ListTagsForResource',
    )
    source = new_hosted_zone_source(client, ACCOUNT, REGION)

    item = source.get(SCOPE, 'Z1')

    assert item.unique_attribute_value() == 'Z1'
    assert item.tags == {}
    client.get_hosted_zone.assert_called_once_with(Id='Z1')


def role_client():
    client = paginated_client({
        'list_roles': [{'Roles': [{'RoleName': 'deploy', 'Path': '/'}]}],
        'list_attached_role_policies': [{
            'AttachedPolicies': [{'PolicyName': 'ReadOnly', 'PolicyArn': 'arn:aws:iam::aws:policy/ReadOnlyAccess'}],
        }],
        'list_role_tags': [{'Tags': [{'Key': 'team', 'Value': 'platform'}]}],
    })
    client.get_role.return_value = {'Role': {'RoleName': 'lambda-exec', 'Path': '/service-role/'}}
    return client


def test_role_source_is_account_scoped():
    source = new_role_source(role_client(), ACCOUNT)

    assert source.scopes() == [ACCOUNT]
    assert source.cache_duration == ROLE_CACHE_DURATION


def test_role_list():
    source = new_role_source(role_client(), ACCOUNT)

    items = source.list(ACCOUNT)

    assert len(items) == 1
    role = items[0]
    assert role.unique_attribute_value() == 'deploy'
    assert role.tags == {'team': 'platform'}
    assert role.attributes['attachedPolicies'][0]['policyName'] == 'ReadOnly'
    assert links(role) == {('iam-policy', 'SEARCH', 'arn:aws:iam::aws:policy/ReadOnlyAccess', 'aws')}


def test_role_search_uses_name_after_path():
    client = role_client()
    source = new_role_source(client, ACCOUNT)

    items = source.search(ACCOUNT, f'arn:aws:iam::{ACCOUNT}:role/service-role/lambda-exec')

    assert [i.unique_attribute_value() for i in items] == ['lambda-exec']
    client.get_role.assert_called_once_with(RoleName='lambda-exec')


def test_role_search_other_account():
    source = new_role_source(role_client(), ACCOUNT)

    with pytest.raises(QueryError) as excinfo:
        source.search(ACCOUNT, 'arn:aws:iam::999999999999:role/deploy')

    assert excinfo.value.error_type == ErrorType.NOSCOPE


def test_role_get_is_cached():
    client = role_client()
    source = new_role_source(client, ACCOUNT)

    source.get(ACCOUNT, 'lambda-exec')
    source.get(ACCOUNT, 'lambda-exec')

    client.get_role.assert_called_once_with(RoleName='lambda-exec')


def bucket_client(location='eu-west-2'):
    client = MagicMock()
    client.list_buckets.return_value = {'Buckets': [{'Name': 'logs'}, {'Name': 'assets'}]}
    client.get_bucket_location.return_value = {'LocationConstraint': location}
    client.get_bucket_tagging.return_value = {'TagSet': [{'Key': 'env', 'Value': 'prod'}]}
    return client


def test_bucket_list():
    source = new_bucket_source(bucket_client(), ACCOUNT, REGION)

    items = {i.unique_attribute_value(): i for i in source.list(SCOPE)}

    assert sorted(items) == ['assets', 'logs']
    logs = items['logs']
    assert logs.attributes['region'] == 'eu-west-2'
    assert logs.tags == {'env': 'prod'}
    assert 'tagSet' not in logs.attributes
    assert links(logs) == {('http', 'GET', 'https://logs.s3.amazonaws.com/', 'global')}


def test_bucket_in_us_east_1_and_untagged():
    client = bucket_client(location=None)
    client.get_bucket_tagging.side_effect = ClientError(
        {'Error': {'Code': 'NoSuchTagSet', 'Message': 'The TagSet does not exist'}}, 'GetBucketTagging',
    )
    source = new_bucket_source(client, ACCOUNT, REGION)

    item = source.get(SCOPE, 'logs')

    assert item.attributes['region'] == 'us-east-1'
    assert item.tags == {}


def test_bucket_list_skips_deleted_bucket():
    client = bucket_client()
    client.get_bucket_location.side_effect = [
        ClientError({'Error': {'Code': 'NoSuchBucket', 'Message': 'gone'}}, 'GetBucketLocation'),
        {'LocationConstraint': 'eu-west-2'},
    ]
    source = new_bucket_source(client, ACCOUNT, REGION)

    assert [i.unique_attribute_value() for i in source.list(SCOPE)] == ['assets']


@pytest.mark.parametrize("arn", [
    'arn:aws:s3:::logs',
    'arn:aws:s3:::logs/2024/01/01/app.log',
])
def test_bucket_search_by_arn(arn):
    client = bucket_client()
    source = new_bucket_source(client, ACCOUNT, REGION)

    items = source.search(SCOPE, arn)

    assert [i.unique_attribute_value() for i in items] == ['logs']
    client.get_bucket_location.assert_called_once_with(Bucket='logs')


def test_bucket_search_rejects_other_services():
    source = new_bucket_source(bucket_client(), ACCOUNT, REGION)

    with pytest.raises(QueryError) as excinfo:
        source.search(SCOPE, f'arn:aws:sqs:{REGION}:{ACCOUNT}:orders')

    assert excinfo.value.error_type == ErrorType.NOTFOUND
