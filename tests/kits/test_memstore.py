import asyncio
from unittest.mock import AsyncMock

import async_timeout
import pytest

from astertower._cogs.clients.errors import APIConflictError, APINotFoundError
from astertower._core.reactor.informing import EventHandler


@pytest.fixture()
def handler():
    return AsyncMock(spec=EventHandler)


@pytest.fixture()
async def watching(memstore, handler):
    memstore.subscribe(handler)
    task = asyncio.create_task(memstore.watch())
    async with async_timeout.timeout(1.0):
        while not memstore.has_synced():
            await asyncio.sleep(0)
    try:
        yield
    finally:
        task.cancel()
        await asyncio.wait([task])


async def test_created_objects_get_versions_and_uids(memstore, make_obj):
    obj = await memstore.create(make_obj('a', resource_version=None))
    assert obj.resource_version == '1'
    assert obj.uid is not None
    assert len(memstore) == 1
    assert 'ns/a' in memstore


async def test_creating_existing_objects_fails(memstore, make_obj):
    await memstore.create(make_obj('a'))
    with pytest.raises(APIConflictError) as err:
        await memstore.create(make_obj('a'))
    assert err.value.status == 409


async def test_returned_objects_are_copies(memstore, make_obj):
    await memstore.create(make_obj('a'))
    obj = await memstore.get('ns', 'a')
    obj.finalizers.add('fin')
    assert (await memstore.get('ns', 'a')).finalizers == set()


async def test_absent_objects_are_none(memstore):
    assert await memstore.get('ns', 'ghost') is None


async def test_updates_bump_the_versions(memstore, make_obj):
    await memstore.create(make_obj('a'))
    obj = await memstore.get('ns', 'a')
    obj.finalizers.add('fin')
    new = await memstore.update(obj)
    assert new.resource_version == '2'
    assert new.finalizers == {'fin'}
    assert (await memstore.get('ns', 'a')).finalizers == {'fin'}


async def test_stale_updates_are_conflicts(memstore, make_obj):
    await memstore.create(make_obj('a'))
    obj1 = await memstore.get('ns', 'a')
    obj2 = await memstore.get('ns', 'a')
    await memstore.update(obj1)
    with pytest.raises(APIConflictError) as err:
        await memstore.update(obj2)
    assert err.value.status == 409
    assert "is stale" in str(err.value)


async def test_updates_of_absent_objects_are_not_found(memstore, make_obj):
    with pytest.raises(APINotFoundError) as err:
        await memstore.update(make_obj('ghost'))
    assert err.value.status == 404


async def test_updates_cannot_change_the_deletion_mark(memstore, make_obj):
    await memstore.create(make_obj('a', finalizers={'fin'}))
    await memstore.request_deletion('ns', 'a')
    obj = await memstore.get('ns', 'a')
    obj.deletion_timestamp = None
    new = await memstore.update(obj)
    assert new.deletion_timestamp is not None


async def test_deletion_of_unblocked_objects_is_immediate(memstore, make_obj):
    await memstore.create(make_obj('a'))
    result = await memstore.request_deletion('ns', 'a')
    assert result is None
    assert await memstore.get('ns', 'a') is None


async def test_deletion_of_blocked_objects_is_postponed(memstore, make_obj):
    await memstore.create(make_obj('a', finalizers={'fin'}))
    result = await memstore.request_deletion('ns', 'a')
    assert result.deletion_timestamp is not None
    assert result.resource_version == '2'
    assert (await memstore.get('ns', 'a')).deletion_timestamp is not None


async def test_repeated_deletion_requests_change_nothing(memstore, make_obj):
    await memstore.create(make_obj('a', finalizers={'fin'}))
    first = await memstore.request_deletion('ns', 'a')
    second = await memstore.request_deletion('ns', 'a')
    assert first.resource_version == second.resource_version
    assert first.deletion_timestamp == second.deletion_timestamp


async def test_deletion_of_absent_objects_is_not_found(memstore):
    with pytest.raises(APINotFoundError):
        await memstore.request_deletion('ns', 'ghost')


async def test_releasing_the_last_finalizer_purges_the_deleted_object(memstore, make_obj):
    await memstore.create(make_obj('a', finalizers={'fin1', 'fin2'}))
    await memstore.request_deletion('ns', 'a')

    obj = await memstore.get('ns', 'a')
    obj.finalizers.discard('fin1')
    await memstore.update(obj)
    assert await memstore.get('ns', 'a') is not None

    obj = await memstore.get('ns', 'a')
    obj.finalizers.discard('fin2')
    await memstore.update(obj)
    assert await memstore.get('ns', 'a') is None


async def test_not_synced_until_watched(memstore):
    assert not memstore.has_synced()


async def test_no_notifications_until_watched(memstore, handler, make_obj):
    memstore.subscribe(handler)
    await memstore.create(make_obj('a'))
    assert not handler.on_added.called


async def test_existing_objects_are_delivered_as_added_when_watched(memstore, handler, make_obj):
    await memstore.create(make_obj('a'))
    await memstore.create(make_obj('b'))
    memstore.subscribe(handler)

    task = asyncio.create_task(memstore.watch())
    try:
        async with async_timeout.timeout(1.0):
            while not memstore.has_synced():
                await asyncio.sleep(0)
    finally:
        task.cancel()
        await asyncio.wait([task])

    keys = {call[0][0].key for call in handler.on_added.await_args_list}
    assert keys == {'ns/a', 'ns/b'}


async def test_changes_are_delivered_when_watched(memstore, watching, handler, make_obj):
    await memstore.create(make_obj('a', finalizers={'fin'}))
    assert handler.on_added.await_count == 1

    obj = await memstore.get('ns', 'a')
    obj.raw['spec'] = {'x': 1}
    await memstore.update(obj)
    assert handler.on_updated.await_count == 1
    old, new = handler.on_updated.await_args[0]
    assert old.resource_version == '1'
    assert new.resource_version == '2'

    await memstore.request_deletion('ns', 'a')
    assert handler.on_updated.await_count == 2

    obj = await memstore.get('ns', 'a')
    obj.finalizers.clear()
    await memstore.update(obj)
    assert handler.on_deleted.await_count == 1
    assert handler.on_deleted.await_args[0][0].key == 'ns/a'
