"""
All the functions to manipulate the object finalization and deletion.

Finalizers are used to block the actual deletion until the finalizers
are removed, meaning that the controller has done all its duties
to "release" the object (e.g. cleanups of the externally owned resources).

The finalizers are a set: adding and removing are idempotent, so there can
never be duplicates of our own finalizer, and removal of an absent one is a no-op.
Both mutating functions report whether anything has actually changed,
so that no-op writes to the store can be avoided.
"""
from astertower._cogs.structs import bodies


def is_deletion_ongoing(
        obj: bodies.ManagedObject,
) -> bool:
    return obj.deletion_timestamp is not None


def is_deletion_blocked(
        obj: bodies.ManagedObject,
        finalizer: str,
) -> bool:
    return finalizer in obj.finalizers


def block_deletion(obj: bodies.ManagedObject, finalizer: str) -> bool:
    if finalizer in obj.finalizers:
        return False
    obj.finalizers.add(finalizer)
    return True


def allow_deletion(obj: bodies.ManagedObject, finalizer: str) -> bool:
    if finalizer not in obj.finalizers:
        return False
    obj.finalizers.discard(finalizer)
    return True
