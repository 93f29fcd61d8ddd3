"""Tests for the external workflow sync client."""
from unittest.mock import MagicMock

import pytest
import requests

from jupiter_portal.integrations.workflow_sync import WorkflowSyncClient, get_sync_client


def _response(status=200, json_data=None, json_error=False):
    resp = MagicMock(spec=requests.Response)
    resp.status_code = status
    if json_error:
        resp.json.side_effect = ValueError('no json')
    else:
        resp.json.return_value = json_data
    return resp


def _client(session, max_attempts=3):
    sleeps = []
    client = WorkflowSyncClient(
        'https://sync.example.com/hook', token='tkn', max_attempts=max_attempts,
        session=session, sleep=sleeps.append,
    )
    return client, sleeps


class TestPushProject:
    """Tests for WorkflowSyncClient.push_project."""

    def test_success_returns_item_id(self):
        session = MagicMock()
        session.post.return_value = _response(json_data={'itemId': 12345})
        client, sleeps = _client(session)

        result = client.push_project({'project_name': 'Cabin'})

        assert result.ok
        assert result.item_id == '12345'
        assert result.attempts == 1
        assert sleeps == []
        _, kwargs = session.post.call_args
        assert kwargs['json'] == {'project_name': 'Cabin'}
        assert kwargs['headers']['Authorization'] == 'Bearer tkn'

    def test_retries_server_errors_with_backoff(self):
        session = MagicMock()
        session.post.side_effect = [
            _response(503),
            requests.ConnectionError('reset'),
            _response(json_data={'item_id': 'abc'}),
        ]
        client, sleeps = _client(session)

        result = client.push_project({})

        assert result.ok
        assert result.item_id == 'abc'
        assert result.attempts == 3
        assert sleeps == [1, 2]

    def test_gives_up_after_max_attempts(self):
        session = MagicMock()
        session.post.return_value = _response(500)
        client, sleeps = _client(session, max_attempts=2)

        result = client.push_project({})

        assert not result.ok
        assert 'HTTP 500' in result.error
        assert session.post.call_count == 2
        assert sleeps == [1]

    def test_client_error_not_retried(self):
        session = MagicMock()
        session.post.return_value = _response(400)
        client, _ = _client(session)

        result = client.push_project({})

        assert not result.ok
        assert session.post.call_count == 1

    @pytest.mark.parametrize('resp,message', [
        (_response(json_error=True), 'invalid JSON'),
        (_response(json_data={'error': 'board locked'}), 'board locked'),
        (_response(json_data=['x']), 'Unexpected response'),
    ])
    def test_unusable_responses(self, resp, message):
        session = MagicMock()
        session.post.return_value = resp
        client, _ = _client(session)

        result = client.push_project({})

        assert not result.ok
        assert message in result.error

    def test_default_blocking_time_is_bounded(self):
        """Defaults keep the worst case of an unreachable endpoint short."""
        client = WorkflowSyncClient('https://sync.example.com/hook')

        assert client.timeout == 5
        assert client.max_blocking_seconds == 11

    def test_blocking_time_counts_every_wait(self):
        client, _ = _client(MagicMock(), max_attempts=3)

        assert client.max_blocking_seconds == 3 * 5 + 1 + 2


class TestGetSyncClient:
    """Tests for get_sync_client."""

    def test_disabled_without_url(self, app):
        assert get_sync_client() is None

    def test_built_from_config(self, app):
        app.config['WORKFLOW_SYNC_URL'] = 'https://sync.example.com/hook'
        app.config['WORKFLOW_SYNC_MAX_ATTEMPTS'] = 4

        client = get_sync_client()

        assert client.url == 'https://sync.example.com/hook'
        assert client.max_attempts == 4
        assert get_sync_client() is client

    def test_default_timeout_from_config(self, app):
        app.config['WORKFLOW_SYNC_URL'] = 'https://sync.example.com/hook'

        assert get_sync_client().timeout == 5
