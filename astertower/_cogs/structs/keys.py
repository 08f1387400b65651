"""
Keys of the managed objects as used in the queue.

A key is the only unit of work: the queue never carries the objects
themselves, since they must be re-read at processing time anyway.
"""
from typing import NewType

ObjectKey = NewType('ObjectKey', str)


class MalformedKeyError(ValueError):
    """ Raised when a key cannot be split into a namespace and a name. """


def make_key(namespace: str | None, name: str) -> ObjectKey:
    return ObjectKey(f'{namespace}/{name}' if namespace else name)


def split_key(key: str) -> tuple[str | None, str]:
    """
    Split the key into a namespace (``None`` if cluster-scoped) and a name.

    Malformed keys can never become well-formed, so they are not retried.
    """
    parts = key.split('/')
    match parts:
        case [name] if name:
            return None, name
        case [namespace, name] if namespace and name:
            return namespace, name
        case _:
            raise MalformedKeyError(f"Unexpected key format: {key!r}")
