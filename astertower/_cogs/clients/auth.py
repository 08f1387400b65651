"""
The authenticated HTTP sessions for talking to the API server.

One context is made per controller from its connection info and is shared
by all the API calls of that controller via a context variable: the tasks
spawned by the controller inherit it, so it is not passed around explicitly.
"""
import base64
import contextlib
import functools
import ssl
import tempfile
from collections.abc import Callable
from contextvars import ContextVar
from typing import Any, TypeVar, cast

import aiohttp

from astertower._cogs.helpers import versions
from astertower._cogs.structs import credentials

context_var: ContextVar['APIContext'] = ContextVar('context_var')

_F = TypeVar('_F', bound=Callable[..., Any])


def authenticated(fn: _F) -> _F:
    """
    Inject the controller's API context as ``context=``, unless passed explicitly.
    """
    @functools.wraps(fn)
    async def wrapper(*args: Any, **kwargs: Any) -> Any:
        if kwargs.get('context') is None:
            try:
                kwargs['context'] = context_var.get()
            except LookupError:
                raise RuntimeError("API context is neither injected nor passed explicitly.") from None
        return await fn(*args, **kwargs)

    return cast(_F, wrapper)


class APIContext:
    """
    An aiohttp session, authenticated and bound to one API server.
    """

    session: aiohttp.ClientSession
    server: str
    default_namespace: str | None

    def __init__(self, info: credentials.ConnectionInfo) -> None:
        super().__init__()
        self.server = info.server.rstrip('/')
        self.default_namespace = info.default_namespace
        self.session = aiohttp.ClientSession(
            connector=aiohttp.TCPConnector(limit=0, ssl=make_ssl_context(info)),
            headers=make_headers(info),
            auth=aiohttp.BasicAuth(info.username, info.password)
                 if info.username and info.password else None,
        )

    def make_url(self, url: str) -> str:
        """ Resolve a server-relative URL; the absolute ones are left as is. """
        return url if '://' in url else f"{self.server}/{url.lstrip('/')}"

    async def close(self) -> None:
        await self.session.close()


def make_headers(info: credentials.ConnectionInfo) -> dict[str, str]:
    headers = {'User-Agent': f'astertower/{versions.version or "unknown"}'}
    if info.scheme or info.token:
        scheme = info.scheme or 'Bearer'
        headers['Authorization'] = f'{scheme} {info.token}' if info.token else scheme
    return headers


def make_ssl_context(info: credentials.ConnectionInfo) -> ssl.SSLContext:
    """
    Verify the server with the given CA, and authenticate with the client cert.

    The in-memory certificates & keys are dumped to temporary files only for
    the time of loading, since the ``ssl`` module accepts only the paths.
    """
    context = ssl.create_default_context(
        purpose=ssl.Purpose.SERVER_AUTH,
        cafile=info.ca_path,
        cadata=decode_to_pem(info.ca_data) if info.ca_data is not None else None,
    )
    with contextlib.ExitStack() as stack:
        cert_path = info.certificate_path or _dump(stack, info.certificate_data)
        pkey_path = info.private_key_path or _dump(stack, info.private_key_data)
        if cert_path and pkey_path:
            context.load_cert_chain(certfile=cert_path, keyfile=pkey_path)
    if info.insecure:
        context.check_hostname = False
        context.verify_mode = ssl.CERT_NONE
    return context


def _dump(stack: contextlib.ExitStack, data: str | bytes | None) -> str | None:
    if not data:
        return None
    file = stack.enter_context(tempfile.NamedTemporaryFile(buffering=0))
    file.write(decode_to_pem(data).encode('ascii'))
    return file.name


def decode_to_pem(data: str | bytes) -> str:
    """ Accept both the PEM texts as is, and the base64-encoded PEMs (as in kubeconfigs). """
    text = data if isinstance(data, str) else data.decode('ascii')
    if text.startswith('-----BEGIN '):
        return text
    return base64.b64decode(text).decode('ascii')
