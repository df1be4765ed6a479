"""Shared fixtures: a scripted stand-in for the remote server."""

import sys
from pathlib import Path

import pytest

sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from repocache.errors import RemoteError
from repocache.pending import Collection, Item
from repocache.resource import Resource


class ScriptedServer:
    """
    Holds every issued remote call until the test answers it.

    respond(verb, params, payload) settles the oldest matching call, the
    way an HTTP response would arrive on a later turn.
    """

    def __init__(self):
        self.calls = []
        self._pending = []

    def resource(self, name="resource"):
        return ScriptedResource(self, name)

    def issue(self, resource, verb, params, handle):
        self.calls.append((resource, verb, params))
        self._pending.append((resource, verb, params, handle))
        return handle

    def respond(self, verb, params, payload=None, resource=None):
        handle = self._take(verb, params, resource)
        handle.resolve(payload)
        return handle

    def fail(self, verb, params, error=None, resource=None):
        handle = self._take(verb, params, resource)
        handle.fail(error or RemoteError(f"{verb} failed", status_code=500))
        return handle

    def count(self, verb=None, resource=None):
        return len([c for c in self.calls
                    if (verb is None or c[1] == verb) and (resource is None or c[0] == resource)])

    @property
    def outstanding(self):
        return len(self._pending)

    def _take(self, verb, params, resource):
        for i, (res, v, p, handle) in enumerate(self._pending):
            if v == verb and p == params and (resource is None or res == resource):
                del self._pending[i]
                return handle
        raise AssertionError(f"no outstanding {verb} call with params {params!r}")


class ScriptedResource(Resource):
    def __init__(self, server, name):
        self.server = server
        self.name = name

    def query(self, params):
        return self.server.issue(self.name, "query", params, Collection())

    def get(self, params):
        return self.server.issue(self.name, "get", params, Item())

    def save(self, params):
        return self.server.issue(self.name, "save", params, Item())

    def delete(self, params):
        return self.server.issue(self.name, "delete", params, Item())


@pytest.fixture
def server():
    return ScriptedServer()
