"""
The reconciliation policies: what to do with the objects in each state.

The engine decides *when* an object is created, updated, or being deleted,
and guards the deletion with the finalizer. The policy decides *what*
must be done with the live state in each of these cases (e.g. which child
resources to create or delete). The engine and the policy are independent.

All the policy's callbacks must be idempotent: they can be called again
for the same object, either after a failure, or on a spurious change.
Any exception raised from the callbacks is retried with a backoff.
"""
from typing import Protocol

from astertower._cogs.helpers import typedefs
from astertower._cogs.structs import bodies


class ReconciliationPolicy(Protocol):

    async def create(self, *, obj: bodies.ManagedObject, logger: typedefs.Logger) -> None:
        """ Bring the newly seen object to life. The finalizer is already persisted. """
        ...

    async def update(self, *, obj: bodies.ManagedObject, logger: typedefs.Logger) -> None:
        """ Align the live state with the declared state. Called on every change. """
        ...

    async def cleanup(self, *, obj: bodies.ManagedObject, logger: typedefs.Logger) -> None:
        """ Release the externally owned resources. The finalizer is removed after this. """
        ...


class NoopPolicy:
    """ A policy that only maintains the finalizers and does nothing else. """

    async def create(self, *, obj: bodies.ManagedObject, logger: typedefs.Logger) -> None:
        pass

    async def update(self, *, obj: bodies.ManagedObject, logger: typedefs.Logger) -> None:
        pass

    async def cleanup(self, *, obj: bodies.ManagedObject, logger: typedefs.Logger) -> None:
        pass
