#!/usr/bin/env python3
"""
Remote Collaborators — collection, item and search resources

Implements:
- Resource: interface a repository calls (query/get/save/delete)
- RequestQueue: single-threaded delivery of remote outcomes
- RestResource: JSON-over-HTTP resource built on requests

Every operation returns a pending handle immediately. The HTTP request
itself runs when the owning RequestQueue is drained, and the handle
settles on the draining thread in the order requests were issued.
"""

import logging
import os
import re
from collections import deque
from typing import Any, Callable, Deque, Dict, Mapping, Tuple
from urllib.parse import quote

import requests

from .errors import RemoteError
from .pending import Collection, Item, Pending

logger = logging.getLogger(__name__)

PLACEHOLDER = re.compile(r"\{(\w+)\}")


class Resource:
    """
    Remote collaborator used by a Repository.

    A collaborator implements whichever operations it supports; the rest
    raise NotImplementedError.
    """

    def query(self, params: Mapping[str, Any]) -> Collection:
        raise NotImplementedError(f"{type(self).__name__} does not support query()")

    def get(self, params: Mapping[str, Any]) -> Item:
        raise NotImplementedError(f"{type(self).__name__} does not support get()")

    def save(self, params: Mapping[str, Any]) -> Item:
        raise NotImplementedError(f"{type(self).__name__} does not support save()")

    def delete(self, params: Mapping[str, Any]) -> Item:
        raise NotImplementedError(f"{type(self).__name__} does not support delete()")


class RequestQueue:
    """FIFO of issued remote jobs, settled one at a time by drain()."""

    def __init__(self) -> None:
        self._jobs: Deque[Tuple[Pending, Callable[[], Any]]] = deque()
        self.processed = 0

    def __len__(self) -> int:
        return len(self._jobs)

    def submit(self, handle: Pending, job: Callable[[], Any]) -> Pending:
        self._jobs.append((handle, job))
        return handle

    def drain(self) -> int:
        """
        Run queued jobs in issuance order, including jobs queued by the
        callbacks of earlier ones. A job raising RemoteError fails its
        handle; anything else it returns resolves the handle.
        """
        count = 0
        while self._jobs:
            handle, job = self._jobs.popleft()
            count += 1
            try:
                payload = job()
            except RemoteError as e:
                handle.fail(e)
                continue
            handle.resolve(payload)
        self.processed += count
        return count


class RestResource(Resource):
    """
    JSON REST resource addressed by a URL template.

    ``{name}`` placeholders are filled from params and consumed; leftover
    params travel as the query string (GET, DELETE) or JSON body (POST).
    """

    DEFAULT_TIMEOUT = 30  # seconds

    def __init__(self, url_template: str, base_url: str = None, api_key: str = None,
                 timeout: int = None, queue: RequestQueue = None):
        self.url_template = url_template
        self.base_url = (base_url or os.environ.get("REPOCACHE_BASE_URL", "")).rstrip("/")
        self.api_key = api_key or os.environ.get("REPOCACHE_API_KEY")
        self.timeout = timeout or self.DEFAULT_TIMEOUT
        self.queue = queue if queue is not None else RequestQueue()

        self._request_count = 0
        self._error_count = 0

    def query(self, params: Mapping[str, Any]) -> Collection:
        return self._schedule(Collection(), "GET", params)

    def get(self, params: Mapping[str, Any]) -> Item:
        return self._schedule(Item(), "GET", params)

    def save(self, params: Mapping[str, Any]) -> Item:
        return self._schedule(Item(), "POST", params)

    def delete(self, params: Mapping[str, Any]) -> Item:
        return self._schedule(Item(), "DELETE", params)

    def build_url(self, params: Mapping[str, Any]) -> Tuple[str, Dict[str, Any]]:
        """Fill the template from params; return the URL and the unused params."""
        remaining = dict(params or {})

        def fill(match):
            name = match.group(1)
            value = remaining.pop(name, None)
            return "" if value is None else quote(str(value), safe="")

        path = PLACEHOLDER.sub(fill, self.url_template)
        path = re.sub(r"/{2,}", "/", path)
        if len(path) > 1:
            path = path.rstrip("/")
        return f"{self.base_url}{path}", remaining

    def get_stats(self) -> Dict[str, int]:
        return {"requests": self._request_count, "errors": self._error_count}

    def _headers(self) -> Dict[str, str]:
        headers = {
            "Content-Type": "application/json",
            "Accept": "application/json",
        }
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"
        return headers

    def _schedule(self, handle: Pending, method: str, params: Mapping[str, Any]) -> Pending:
        url, remaining = self.build_url(params)
        return self.queue.submit(handle, lambda: self._request(method, url, remaining))

    def _request(self, method: str, url: str, params: Dict[str, Any]) -> Any:
        """
        Perform the HTTP call and return the decoded JSON payload.

        Raises RemoteError for HTTP errors and for any failure raised by requests.
        """
        self._request_count += 1
        kwargs: Dict[str, Any] = {"json": params} if method == "POST" else {"params": params}

        try:
            response = requests.request(
                method,
                url,
                headers=self._headers(),
                timeout=self.timeout,
                **kwargs,
            )
        except requests.Timeout as e:
            self._error_count += 1
            logger.error(f"Remote timeout: {method} {url} (>{self.timeout}s)")
            raise RemoteError(f"timeout after {self.timeout}s", method=method, url=url) from e
        except requests.ConnectionError as e:
            self._error_count += 1
            logger.error(f"Remote connection error: {method} {url}")
            raise RemoteError("connection error", method=method, url=url) from e
        except requests.RequestException as e:
            self._error_count += 1
            logger.error(f"Remote request error: {method} {url}: {e}")
            raise RemoteError(f"request error: {e}", method=method, url=url) from e

        if response.status_code >= 400:
            self._error_count += 1
            logger.warning(f"Remote error: {method} {url} -> {response.status_code} {response.text[:200]}")
            raise RemoteError(
                f"{method} {url} returned {response.status_code}",
                status_code=response.status_code,
                method=method,
                url=url,
            )

        if response.status_code == 204 or not response.content:
            return None
        try:
            return response.json()
        except ValueError as e:
            self._error_count += 1
            raise RemoteError("response is not valid JSON", status_code=response.status_code,
                              method=method, url=url) from e
