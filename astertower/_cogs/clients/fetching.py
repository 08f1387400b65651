from collections.abc import Collection

from astertower._cogs.clients import api
from astertower._cogs.configs import configuration
from astertower._cogs.helpers import typedefs
from astertower._cogs.structs import bodies, references


async def list_objs(
        *,
        settings: configuration.OperatorSettings,
        resource: references.Resource,
        namespace: str | None,
        logger: typedefs.Logger,
) -> tuple[Collection[bodies.RawBody], str]:
    """
    List the objects and the listing's resource version to watch from.

    Without a namespace, the objects of all namespaces are listed.
    The listed items have no kind & API version of their own, so they
    are taken from the list itself, as if the objects were read one by one.
    """
    rsp = await api.get(resource.get_url(namespace=namespace), settings=settings, logger=logger)
    kind = rsp.get('kind', '').removesuffix('List')
    api_version = rsp.get('apiVersion')
    items: list[bodies.RawBody] = []
    for item in rsp.get('items', []):
        if kind:
            item.setdefault('kind', kind)
        if api_version:
            item.setdefault('apiVersion', api_version)
        items.append(item)
    return items, rsp.get('metadata', {}).get('resourceVersion')
