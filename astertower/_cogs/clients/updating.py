from astertower._cogs.clients import api
from astertower._cogs.configs import configuration
from astertower._cogs.helpers import typedefs
from astertower._cogs.structs import bodies, references


async def replace_obj(
        *,
        settings: configuration.OperatorSettings,
        resource: references.Resource,
        namespace: str | None,
        name: str,
        body: bodies.RawBody,
        logger: typedefs.Logger,
) -> bodies.RawBody:
    """
    Replace the whole object with the new body; return the stored body.

    The body must carry the resource version as it was read. If the object
    has been changed since then, :class:`errors.APIConflictError` is raised,
    and the caller must re-read the object and re-apply its changes.
    If the object is gone, :class:`errors.APINotFoundError` is raised.
    """
    return await api.put(
        resource.get_url(namespace=namespace, name=name),
        payload=body,
        settings=settings,
        logger=logger,
    )
