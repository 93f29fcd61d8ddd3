"""
External workflow sync client.

Pushes newly created projects to the external work-management board
through a single JSON endpoint and returns the board's item id.

The sync is a notification sent after the project row is committed.
It has its own retry policy (bounded attempts with backoff on network
errors and 5xx responses) and never fails the operation that triggered
it; callers turn a failed SyncResult into a soft warning.

The push runs inline in the request that created the project, so a
slow or unreachable endpoint delays that response by up to
``max_blocking_seconds`` (attempts x timeout plus the backoff waits,
11 s with the defaults). Keep WORKFLOW_SYNC_TIMEOUT short.

Testability: pass a mock ``session`` (and a no-op ``sleep``) instead of
letting the client create a real requests.Session.
"""
from __future__ import annotations

import logging
import time
from typing import Any, Callable

import requests
from flask import current_app

logger = logging.getLogger(__name__)

_DEFAULT_BACKOFF_SECONDS = (1, 2)
_DEFAULT_TIMEOUT_SECONDS = 5


class SyncResult:
    """Outcome of one push to the sync endpoint.

    Attributes:
        ok: True when the endpoint returned an item id.
        item_id: External item id (string) or None.
        error: Human-readable error message or None.
        attempts: Number of HTTP attempts made.
    """

    def __init__(self, ok: bool, item_id: str | None = None,
                 error: str | None = None, attempts: int = 0) -> None:
        self.ok = ok
        self.item_id = item_id
        self.error = error
        self.attempts = attempts

    def __repr__(self) -> str:
        return f'<SyncResult ok={self.ok} item_id={self.item_id} error={self.error!r}>'


class WorkflowSyncClient:
    """Client for the external workflow sync endpoint."""

    def __init__(
        self,
        url: str,
        token: str = '',
        timeout: float = _DEFAULT_TIMEOUT_SECONDS,
        max_attempts: int = 2,
        backoff: tuple = _DEFAULT_BACKOFF_SECONDS,
        session: requests.Session | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.url = url
        self.token = token
        self.timeout = timeout
        self.max_attempts = max(1, max_attempts)
        self.backoff = backoff
        self._session = session
        self._sleep = sleep

    @property
    def max_blocking_seconds(self) -> float:
        """Longest time push_project can hold the caller before giving up."""
        waits = sum(
            self.backoff[min(attempt - 1, len(self.backoff) - 1)]
            for attempt in range(1, self.max_attempts)
        ) if self.backoff else 0
        return self.max_attempts * self.timeout + waits

    @property
    def session(self) -> requests.Session:
        """Return (or lazily create) the requests.Session."""
        if self._session is None:
            self._session = requests.Session()
        return self._session

    def _headers(self) -> dict:
        headers = {'Content-Type': 'application/json'}
        if self.token:
            headers['Authorization'] = f'Bearer {self.token}'
        return headers

    def _wait(self, attempt: int) -> None:
        if not self.backoff:
            return
        delay = self.backoff[min(attempt - 1, len(self.backoff) - 1)]
        self._sleep(delay)

    def push_project(self, payload: dict[str, Any]) -> SyncResult:
        """Send a project payload and return the external item id.

        Args:
            payload: JSON-serialisable project summary.

        Returns:
            SyncResult; ``ok`` is False after the last failed attempt
            or on a non-retryable response.
        """
        error = None
        for attempt in range(1, self.max_attempts + 1):
            try:
                resp = self.session.post(
                    self.url, json=payload, headers=self._headers(), timeout=self.timeout
                )
            except requests.RequestException as e:
                error = f'Network error: {e}'
                logger.warning('Workflow sync attempt %d failed: %s', attempt, error)
            else:
                if resp.status_code >= 500:
                    error = f'Sync endpoint returned HTTP {resp.status_code}'
                    logger.warning('Workflow sync attempt %d failed: %s', attempt, error)
                elif resp.status_code >= 400:
                    error = f'Sync endpoint rejected the request (HTTP {resp.status_code})'
                    return SyncResult(False, error=error, attempts=attempt)
                else:
                    return self._parse(resp, attempt)

            if attempt < self.max_attempts:
                self._wait(attempt)

        return SyncResult(False, error=error, attempts=self.max_attempts)

    @staticmethod
    def _parse(resp: requests.Response, attempt: int) -> SyncResult:
        try:
            data = resp.json()
        except ValueError:
            return SyncResult(False, error='Sync endpoint returned invalid JSON', attempts=attempt)

        if not isinstance(data, dict):
            return SyncResult(False, error='Unexpected response from sync endpoint', attempts=attempt)
        item_id = data.get('itemId', data.get('item_id'))
        if item_id is not None:
            return SyncResult(True, item_id=str(item_id), attempts=attempt)
        if data.get('error'):
            return SyncResult(False, error=str(data['error']), attempts=attempt)
        return SyncResult(False, error='Unexpected response from sync endpoint', attempts=attempt)


def get_sync_client() -> WorkflowSyncClient | None:
    """Client for the current app, or None when WORKFLOW_SYNC_URL is unset.

    Cached in ``app.extensions['workflow_sync']``; tests may put their
    own client there.
    """
    if 'workflow_sync' in current_app.extensions:
        return current_app.extensions['workflow_sync']

    url = current_app.config.get('WORKFLOW_SYNC_URL')
    client = None
    if url:
        client = WorkflowSyncClient(
            url,
            token=current_app.config.get('WORKFLOW_SYNC_TOKEN', ''),
            timeout=current_app.config.get('WORKFLOW_SYNC_TIMEOUT', _DEFAULT_TIMEOUT_SECONDS),
            max_attempts=current_app.config.get('WORKFLOW_SYNC_MAX_ATTEMPTS', 2),
        )
    current_app.extensions['workflow_sync'] = client
    return client
