"""Tests for the item and query types and the result stream."""

import pytest

from aws_source.sdp import ErrorType, Health, Item, Query, QueryError, QueryMethod, linked
from aws_source.stream import QueryResultStream


def make_item(**kwargs):
    defaults = dict(
        type='ec2-vpc',
        unique_attribute='vpcId',
        attributes={'vpcId': 'vpc-0abc', 'cidrBlock': '10.0.0.0/16'},
        scope='123456789012.eu-west-2',
    )
    defaults.update(kwargs)
    return Item(**defaults)


def test_query_wire_format():
    query = Query(
        type='ec2-vpc',
        method=QueryMethod.GET,
        query='vpc-0abc',
        scope='123456789012.eu-west-2',
        uuid='6f1c1e3a',
        deadline=1700000000.5,
        subject='return.6f1c1e3a',
    )

    data = query.to_dict()
    assert data == {
        'type': 'ec2-vpc',
        'method': 'GET',
        'query': 'vpc-0abc',
        'scope': '123456789012.eu-west-2',
        'uuid': '6f1c1e3a',
        'ignoreCache': False,
        'deadline': 1700000000.5,
        'subject': 'return.6f1c1e3a',
    }
    assert Query.from_dict(data) == query


def test_query_from_dict_defaults():
    query = Query.from_dict({'type': 'ec2-vpc', 'method': 'list'})

    assert query.method == QueryMethod.LIST
    assert query.scope == '*'
    assert query.query == ''
    assert query.uuid
    assert query.deadline is None


@pytest.mark.parametrize("data", [
    {'method': 'GET'},
    {'type': 'ec2-vpc', 'method': 'DELETE'},
    {'type': 'ec2-vpc'},
])
def test_query_from_dict_rejects_invalid(data):
    with pytest.raises(ValueError):
        Query.from_dict(data)


def test_item_identity():
    item = make_item()

    assert item.unique_attribute_value() == 'vpc-0abc'
    assert item.globally_unique_name() == '123456789012.eu-west-2.ec2-vpc.vpc-0abc'


def test_item_missing_unique_attribute():
    item = make_item(attributes={'cidrBlock': '10.0.0.0/16'})

    with pytest.raises(KeyError):
        item.unique_attribute_value()


def test_item_to_dict():
    item = make_item(
        tags={'Name': 'main'},
        health=Health.OK,
        linked_item_queries=[
            linked('ec2-subnet', QueryMethod.SEARCH, 'vpc-0abc', '123456789012.eu-west-2', in_=False, out=True),
        ],
    )

    data = item.to_dict()

    assert data['type'] == 'ec2-vpc'
    assert data['uniqueAttribute'] == 'vpcId'
    assert data['tags'] == {'Name': 'main'}
    assert data['health'] == 'OK'
    assert data['linkedItemQueries'] == [{
        'query': {
            'type': 'ec2-subnet',
            'method': 'SEARCH',
            'query': 'vpc-0abc',
            'scope': '123456789012.eu-west-2',
        },
        'blastPropagation': {'in': False, 'out': True},
    }]


def test_item_to_dict_without_health():
    assert 'health' not in make_item().to_dict()


def test_item_has_tag():
    item = make_item(tags={'env': 'prod'})

    assert item.has_tag('env')
    assert item.has_tag('env', 'prod')
    assert not item.has_tag('env', 'dev')
    assert not item.has_tag('team')


def test_query_error_to_dict():
    err = QueryError(ErrorType.NOTFOUND, "vpc not found", scope="123.eu-west-2",
                     source_name="ec2-vpc-source", item_type="ec2-vpc")

    assert str(err) == "vpc not found"
    assert err.to_dict() == {
        'errorType': 'NOTFOUND',
        'errorString': 'vpc not found',
        'scope': '123.eu-west-2',
        'sourceName': 'ec2-vpc-source',
        'itemType': 'ec2-vpc',
    }


def test_stream_forwards_until_closed():
    items, errors = [], []
    stream = QueryResultStream(items.append, errors.append)

    stream.send_item(make_item())
    stream.send_error(QueryError(ErrorType.OTHER, "first"))
    stream.close()
    stream.send_item(make_item())
    stream.send_error(QueryError(ErrorType.OTHER, "second"))

    assert stream.closed
    assert len(items) == 1
    assert [str(e) for e in errors] == ["first"]
