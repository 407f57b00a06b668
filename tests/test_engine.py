"""Tests for the NATS query engine."""

import asyncio
import json
import threading
import time
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from nats.errors import ConnectionClosedError

from aws_source.engine import ALL_SUBJECT, Engine, NatsOptions, execute
from aws_source.sdp import ErrorType, Item, Query, QueryError, QueryMethod
from aws_source.stream import QueryResultStream

SCOPE = '123456789012.eu-west-2'
OTHER_SCOPE = '123456789012.us-east-1'
SUBJECT = 'return.response.abc'


class FakeSource:
    """Answers every query with a fixed item, or raises a fixed error."""

    def __init__(self, item_type, scope=SCOPE, error=None, block=None):
        self.type = item_type
        self.name = f"{item_type}-source"
        self._scope = scope
        self.error = error
        self.block = block
        self.calls = []

    def scopes(self):
        return [self._scope]

    def _item(self, query):
        return Item(type=self.type, unique_attribute='id', attributes={'id': query}, scope=self._scope)

    def get(self, scope, query, ignore_cache=False):
        self.calls.append(('GET', scope, query))
        if self.block is not None:
            self.block.wait(5)
        if self.error is not None:
            raise self.error
        return self._item(query)

    def list_stream(self, scope, ignore_cache, stream):
        self.calls.append(('LIST', scope, ''))
        stream.send_item(self._item('a'))
        stream.send_item(self._item('b'))

    def search_stream(self, scope, query, ignore_cache, stream):
        self.calls.append(('SEARCH', scope, query))
        stream.send_error(QueryError(ErrorType.NOTFOUND, f"nothing matches {query}", scope=scope))


def fake_nats():
    nc = MagicMock()
    nc.publish = AsyncMock()
    nc.subscribe = AsyncMock(side_effect=lambda subject, cb=None: MagicMock(subject=subject, unsubscribe=AsyncMock()))
    nc.drain = AsyncMock()
    nc.is_connected = True
    nc.is_closed = False
    return nc


def published(nc):
    return [json.loads(c.args[1]) for c in nc.publish.call_args_list]


@pytest.fixture
def engine():
    engine = Engine('aws-source', max_parallel_executions=4)
    engine.nc = fake_nats()
    yield engine
    engine._pool.shutdown(wait=False)


def query(item_type='ec2-vpc', method=QueryMethod.GET, q='vpc-1', scope=SCOPE, **kwargs):
    return Query(type=item_type, method=method, query=q, scope=scope, subject=SUBJECT, uuid='abc', **kwargs)


def test_get_publishes_item_then_response(engine):
    engine.add_sources(FakeSource('ec2-vpc'))

    asyncio.run(engine.handle_query(query()))

    messages = published(engine.nc)
    assert [c.args[0] for c in engine.nc.publish.call_args_list] == [SUBJECT, SUBJECT]
    assert messages[0]['item']['attributes'] == {'id': 'vpc-1'}
    assert messages[1] == {'response': {'responder': 'aws-source', 'state': 'COMPLETE', 'uuid': 'abc'}}


def test_list_streams_every_item(engine):
    engine.add_sources(FakeSource('ec2-vpc'))

    asyncio.run(engine.handle_query(query(method=QueryMethod.LIST, q='')))

    items = [m['item']['attributes']['id'] for m in published(engine.nc) if 'item' in m]
    assert sorted(items) == ['a', 'b']


def test_errors_without_items_are_an_error_response(engine):
    engine.add_sources(FakeSource('ec2-vpc'))

    asyncio.run(engine.handle_query(query(method=QueryMethod.SEARCH, q='prod')))

    messages = published(engine.nc)
    assert messages[0]['error']['errorType'] == 'NOTFOUND'
    assert messages[-1]['response']['state'] == 'ERROR'


def test_no_matching_sources(engine):
    engine.add_sources(FakeSource('ec2-vpc'))

    asyncio.run(engine.handle_query(query(item_type='s3-bucket')))

    messages = published(engine.nc)
    assert messages[0]['error']['errorType'] == 'NOSCOPE'
    assert messages[0]['error']['errorString'] == 'no matching sources found for type s3-bucket in scope ' + SCOPE
    assert messages[1]['response']['state'] == 'ERROR'


def test_wildcards_match_every_source(engine):
    vpcs = FakeSource('ec2-vpc')
    other_region = FakeSource('ec2-vpc', scope=OTHER_SCOPE)
    subnets = FakeSource('ec2-subnet')
    engine.add_sources(vpcs, other_region, subnets)

    asyncio.run(engine.handle_query(query(item_type='*', scope='*')))

    assert vpcs.calls == [('GET', SCOPE, 'vpc-1')]
    assert other_region.calls == [('GET', OTHER_SCOPE, 'vpc-1')]
    assert subnets.calls == [('GET', SCOPE, 'vpc-1')]
    assert len([m for m in published(engine.nc) if 'item' in m]) == 3


def test_scope_filters_sources(engine):
    vpcs = FakeSource('ec2-vpc')
    other_region = FakeSource('ec2-vpc', scope=OTHER_SCOPE)
    engine.add_sources(vpcs, other_region)

    asyncio.run(engine.handle_query(query(scope=OTHER_SCOPE)))

    assert vpcs.calls == []
    assert other_region.calls == [('GET', OTHER_SCOPE, 'vpc-1')]


def test_some_errors_with_items_is_complete(engine):
    engine.add_sources(
        FakeSource('ec2-vpc'),
        FakeSource('ec2-vpc', scope=OTHER_SCOPE, error=QueryError(ErrorType.NOTFOUND, 'not here')),
    )

    asyncio.run(engine.handle_query(query(scope='*')))

    messages = published(engine.nc)
    assert len([m for m in messages if 'error' in m]) == 1
    assert messages[-1]['response']['state'] == 'COMPLETE'


def test_deadline(engine):
    release = threading.Event()
    engine.add_sources(FakeSource('ec2-vpc', block=release))

    try:
        asyncio.run(engine.handle_query(query(deadline=time.time() + 0.2)))
    finally:
        release.set()

    messages = published(engine.nc)
    assert messages[0]['error']['errorType'] == 'TIMEOUT'
    assert messages[0]['error']['errorString'] == 'query deadline exceeded'
    assert messages[-1]['response']['state'] == 'ERROR'


def test_execute_wraps_unexpected_errors():
    errors = []
    stream = QueryResultStream(lambda item: None, errors.append)
    source = FakeSource('ec2-vpc', error=RuntimeError('boom'))

    execute(source, query(), SCOPE, stream)

    assert errors[0].error_type == ErrorType.OTHER
    assert errors[0].error_string == 'boom'
    assert errors[0].source_name == 'ec2-vpc-source'


def test_on_request_runs_query(engine):
    engine.add_sources(FakeSource('ec2-vpc'))
    msg = MagicMock()
    msg.subject = ALL_SUBJECT
    msg.reply = 'inbox.1'
    msg.data = json.dumps({'type': 'ec2-vpc', 'method': 'GET', 'query': 'vpc-1', 'scope': SCOPE}).encode()

    async def receive():
        await engine._on_request(msg)
        await asyncio.gather(*engine._tasks)

    asyncio.run(receive())

    # Responses go to the reply subject when the query names none
    assert {c.args[0] for c in engine.nc.publish.call_args_list} == {'inbox.1'}


@pytest.mark.parametrize("data", [
    b'not json',
    json.dumps({'method': 'GET'}).encode(),
    json.dumps({'type': 'ec2-vpc', 'method': 'DELETE'}).encode(),
])
def test_on_request_discards_invalid_queries(engine, data):
    msg = MagicMock()
    msg.subject = ALL_SUBJECT
    msg.reply = 'inbox.1'
    msg.data = data

    asyncio.run(engine._on_request(msg))

    assert engine._tasks == set()
    engine.nc.publish.assert_not_called()


def test_on_request_without_reply_subject(engine):
    msg = MagicMock()
    msg.subject = ALL_SUBJECT
    msg.reply = ''
    msg.data = json.dumps({'type': 'ec2-vpc', 'method': 'GET', 'query': 'vpc-1'}).encode()

    asyncio.run(engine._on_request(msg))

    assert engine._tasks == set()


def test_start_subscribes_to_every_scope():
    nc = fake_nats()
    engine = Engine('aws-source', NatsOptions(servers=['nats://nats:4222']), max_parallel_executions=2)
    engine.add_sources(FakeSource('ec2-vpc'), FakeSource('ec2-subnet'), FakeSource('ec2-vpc', scope=OTHER_SCOPE))

    with patch('aws_source.engine.nats.connect', new=AsyncMock(return_value=nc)) as connect:
        asyncio.run(engine.start())
        asyncio.run(engine.stop())

    assert connect.call_args.kwargs['servers'] == ['nats://nats:4222']
    subjects = [c.args[0] for c in nc.subscribe.call_args_list]
    assert subjects == [ALL_SUBJECT, f'request.scope.{SCOPE}', f'request.scope.{OTHER_SCOPE}']
    assert engine.is_nats_connected()
    nc.drain.assert_awaited_once()


def test_connect_gives_up_after_retries():
    engine = Engine('aws-source', NatsOptions(num_retries=1, retry_delay=0), max_parallel_executions=1)

    with patch('aws_source.engine.nats.connect', new=AsyncMock(side_effect=OSError('refused'))) as connect:
        with pytest.raises(ConnectionError):
            asyncio.run(engine.start())

    assert connect.await_count == 2
    assert not engine.is_nats_connected()
    engine._pool.shutdown(wait=False)


def test_connect_retries_until_connected():
    nc = fake_nats()
    engine = Engine('aws-source', NatsOptions(num_retries=-1, retry_delay=0), max_parallel_executions=1)
    attempts = [OSError('refused'), OSError('refused'), nc]

    with patch('aws_source.engine.nats.connect', new=AsyncMock(side_effect=attempts)) as connect:
        asyncio.run(engine._connect())

    assert connect.await_count == 3
    assert engine.nc is nc
    engine._pool.shutdown(wait=False)


def closing_nats():
    """A connection that refuses to publish once drained, like a real one."""
    nc = fake_nats()
    sent = []

    async def drain():
        nc.is_closed = True
        nc.is_connected = False

    async def publish(subject, data):
        if nc.is_closed:
            raise ConnectionClosedError()
        sent.append(json.loads(data))

    nc.drain = AsyncMock(side_effect=drain)
    nc.publish = AsyncMock(side_effect=publish)
    return nc, sent


def test_stop_lets_running_queries_finish_before_draining():
    nc, sent = closing_nats()
    release = threading.Event()
    engine = Engine('aws-source', max_parallel_executions=2)
    engine.add_sources(FakeSource('ec2-vpc', block=release))
    msg = MagicMock()
    msg.subject = ALL_SUBJECT
    msg.reply = 'inbox.1'
    msg.data = json.dumps({'type': 'ec2-vpc', 'method': 'GET', 'query': 'vpc-1', 'scope': SCOPE}).encode()

    async def run():
        await engine.start()
        subscriptions = list(engine._subscriptions)
        await engine._on_request(msg)
        asyncio.get_running_loop().call_later(0.1, release.set)
        await engine.stop()
        return subscriptions

    try:
        with patch('aws_source.engine.nats.connect', new=AsyncMock(return_value=nc)):
            subscriptions = asyncio.run(run())
    finally:
        release.set()

    assert sent[0]['item']['attributes'] == {'id': 'vpc-1'}
    assert sent[-1]['response']['state'] == 'COMPLETE'
    for sub in subscriptions:
        sub.unsubscribe.assert_awaited_once()
    nc.drain.assert_awaited_once()
    assert engine._subscriptions == []


class SlowListSource(FakeSource):
    """Sends one item, then keeps listing past the deadline."""

    def list_stream(self, scope, ignore_cache, stream):
        stream.send_item(self._item('a'))
        self.block.wait(5)
        stream.send_item(self._item('late'))


def test_items_sent_before_deadline_are_published(engine):
    release = threading.Event()
    engine.add_sources(SlowListSource('ec2-vpc', block=release))

    try:
        asyncio.run(engine.handle_query(query(method=QueryMethod.LIST, q='', deadline=time.time() + 0.2)))
    finally:
        release.set()

    messages = published(engine.nc)
    assert messages[0]['item']['attributes'] == {'id': 'a'}
    assert messages[1]['error']['errorType'] == 'TIMEOUT'
    # One item arrived, so the query still counts as complete
    assert messages[-1]['response']['state'] == 'COMPLETE'
    assert len(messages) == 3


def test_connect_kwargs():
    options = NatsOptions(
        servers=['nats://a:4222'],
        connection_name='prod.host',
        creds_file='/creds/user.creds',
    )

    kwargs = options.connect_kwargs()

    assert kwargs['servers'] == ['nats://a:4222']
    assert kwargs['name'] == 'prod.host'
    assert kwargs['user_credentials'] == '/creds/user.creds'
    assert kwargs['max_reconnect_attempts'] == -1
    assert 'tls' not in kwargs
    assert 'nkeys_seed' not in kwargs
