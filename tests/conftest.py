import re
import time
from unittest.mock import AsyncMock

import aiohttp.web
import pytest

from astertower._cogs.clients.auth import APIContext, context_var
from astertower._cogs.configs.configuration import OperatorSettings
from astertower._cogs.structs.bodies import ManagedObject
from astertower._cogs.structs.credentials import ConnectionInfo
from astertower._cogs.structs.references import Resource
from astertower._kits.memstore import MemoryStore


@pytest.fixture()
def resource():
    return Resource('kasterism.io', 'v1alpha1', 'astros', namespaced=True)


@pytest.fixture()
def settings():
    """ Short intervals & timeouts, so that the tests do not wait for long. """
    settings = OperatorSettings()
    settings.working.sync_interval = 0.01
    settings.working.exit_timeout = 1.0
    return settings


@pytest.fixture()
def finalizer(settings):
    return settings.persistence.finalizer


@pytest.fixture()
def memstore():
    return MemoryStore()


@pytest.fixture()
def make_obj():
    def make_obj_fn(name='a', namespace='ns', **kwargs):
        kwargs.setdefault('resource_version', '1')
        raw = kwargs.pop('raw', {
            'apiVersion': 'kasterism.io/v1alpha1',
            'kind': 'Astro',
            'metadata': {'name': name, 'namespace': namespace},
            'spec': {'entrypoint': 'start'},
        })
        return ManagedObject(name=name, namespace=namespace, raw=raw, **kwargs)
    return make_obj_fn


@pytest.fixture()
def hostname():
    """ The API server's host as served by `aresponses`. """
    return 'fake-host'


@pytest.fixture()
async def api_session_context(hostname):
    context = APIContext(ConnectionInfo(server=f'https://{hostname}'))
    yield context
    await context.close()


# Set in a sync fixture: the async fixtures' context does not reach the tests.
@pytest.fixture()
def api_context(api_session_context):
    token = context_var.set(api_session_context)
    yield api_session_context
    context_var.reset(token)


@pytest.fixture()
def resp_mocker(api_context, aresponses):
    """
    Make `aresponses` handlers as mocks, to assert on the requests they served.

    The requests' JSON payloads are kept as ``request.data``, since the bodies
    cannot be read after the handler has finished::

        handler = resp_mocker(return_value=aiohttp.web.json_response({}))
        aresponses.add(hostname, '/url', 'get', handler)
        ...
        assert handler.call_args[0][0].data == {...}
    """
    def resp_mocker_fn(**kwargs):
        response_mock = AsyncMock(**kwargs)

        async def handle(request):
            try:
                request.data = await request.json()
            except (ValueError, aiohttp.ContentTypeError):
                request.data = None
            return await response_mock(request)

        return AsyncMock(side_effect=handle)
    return resp_mocker_fn


class Timer:
    """ Measure the duration of a code block, sync or async. """

    def __init__(self):
        self.seconds = None
        self._started = None

    def __enter__(self):
        self._started = time.perf_counter()
        return self

    def __exit__(self, *_):
        self.seconds = time.perf_counter() - self._started

    async def __aenter__(self):
        return self.__enter__()

    async def __aexit__(self, *args):
        self.__exit__(*args)


@pytest.fixture()
def timer():
    return Timer()


@pytest.fixture()
def assert_logs(caplog):
    """
    Assert that the messages matching the patterns are logged, in this order.

    Other messages in between are ignored.
    """
    def assert_logs_fn(patterns):
        __tracebackhide__ = True
        remaining = list(patterns)
        for message in caplog.messages:
            if remaining and re.search(remaining[0], message):
                remaining.pop(0)
        if remaining:
            raise AssertionError(f"Some log patterns were missed: {remaining!r}")
    return assert_logs_fn
