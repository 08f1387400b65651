import logging

import aiohttp.web
import pytest

from astertower._cogs.clients.errors import APIConflictError
from astertower._cogs.clients.fetching import list_objs
from astertower._cogs.clients.updating import replace_obj

logger = logging.getLogger(__name__)


@pytest.mark.parametrize('namespace', [None, 'ns'])
async def test_listing_objects(resp_mocker, aresponses, hostname, settings, resource, namespace):
    listing = {
        'apiVersion': 'kasterism.io/v1alpha1',
        'kind': 'AstroList',
        'metadata': {'resourceVersion': '123'},
        'items': [
            {'metadata': {'namespace': 'ns', 'name': 'a'}},
            {'kind': 'Custom', 'metadata': {'namespace': 'ns', 'name': 'b'}},
        ],
    }
    list_mock = resp_mocker(return_value=aiohttp.web.json_response(listing))
    aresponses.add(hostname, resource.get_url(namespace=namespace), 'get', list_mock)

    items, resource_version = await list_objs(settings=settings, resource=resource,
                                              namespace=namespace, logger=logger)

    assert resource_version == '123'
    assert items == [
        {'apiVersion': 'kasterism.io/v1alpha1', 'kind': 'Astro',
         'metadata': {'namespace': 'ns', 'name': 'a'}},
        {'apiVersion': 'kasterism.io/v1alpha1', 'kind': 'Custom',
         'metadata': {'namespace': 'ns', 'name': 'b'}},
    ]


async def test_replacing_an_object(resp_mocker, aresponses, hostname, settings, resource):
    body = {'metadata': {'namespace': 'ns', 'name': 'a', 'resourceVersion': '5', 'finalizers': ['fin']}}
    response = dict(body, metadata=dict(body['metadata'], resourceVersion='6'))
    put_mock = resp_mocker(return_value=aiohttp.web.json_response(response))
    aresponses.add(hostname, resource.get_url(namespace='ns', name='a'), 'put', put_mock)

    result = await replace_obj(settings=settings, resource=resource, namespace='ns', name='a',
                               body=body, logger=logger)

    assert result == response
    assert put_mock.call_count == 1
    assert put_mock.call_args[0][0].data == body


async def test_replacing_a_stale_object(api_context, aresponses, hostname, settings, resource):
    aresponses.add(hostname, resource.get_url(namespace='ns', name='a'), 'put',
                   aiohttp.web.json_response({'kind': 'Status', 'code': 409}, status=409))

    with pytest.raises(APIConflictError):
        await replace_obj(settings=settings, resource=resource, namespace='ns', name='a',
                          body={'metadata': {'name': 'a', 'resourceVersion': '5'}}, logger=logger)
