"""
The per-key state machine of the reconciliation with the finalizer protocol.

Every key is reconciled from scratch: the object is re-read from the store,
classified into one of the states, and handled according to that state:

* *Deleting*: the deletion is requested (regardless of the finalizers).
  The policy's cleanup is done, then the finalizer is removed and persisted,
  so that the store can finally purge the object.
* *Established*: the finalizer is in place. The policy keeps the live state
  aligned with the declared state. Nothing is persisted by the engine.
* *Pending*: neither of the above. The finalizer is added and persisted first,
  and only then the policy creates whatever the object needs.

No object is ever purged while the finalizer is on it, and the finalizer
is only removed after the cleanup has succeeded. The objects go from pending
to established, and from any state to deleting (never back).

The errors of reading, persisting, and of the policy are not handled here:
they are propagated to the caller to be retried with a backoff. The only
exceptions are the malformed keys (they never become well-formed) and
the absent objects (there is nothing to reconcile anymore).
"""
import enum
import logging

from astertower._cogs.configs import configuration
from astertower._cogs.helpers import typedefs
from astertower._cogs.structs import bodies, finalizers, keys
from astertower._core.actions import loggers
from astertower._core.intents import policies
from astertower._core.reactor import informing

logger = logging.getLogger(__name__)


class State(str, enum.Enum):
    PENDING = 'pending'
    ESTABLISHED = 'established'
    DELETING = 'deleting'


def classify(obj: bodies.ManagedObject, *, finalizer: str) -> State:
    if finalizers.is_deletion_ongoing(obj):
        return State.DELETING
    elif finalizers.is_deletion_blocked(obj, finalizer=finalizer):
        return State.ESTABLISHED
    else:
        return State.PENDING


class Reconciler:

    def __init__(
            self,
            *,
            store: informing.ObjectStore,
            settings: configuration.OperatorSettings | None = None,
            policy: policies.ReconciliationPolicy | None = None,
    ) -> None:
        super().__init__()
        self.store = store
        self.settings = settings if settings is not None else configuration.OperatorSettings()
        self.policy: policies.ReconciliationPolicy = policy if policy is not None else policies.NoopPolicy()

    @property
    def finalizer(self) -> str:
        return self.settings.persistence.finalizer

    async def sync(self, key: keys.ObjectKey) -> None:
        """
        Reconcile the object by its key; raise if it should be retried later.
        """
        try:
            namespace, name = keys.split_key(key)
        except keys.MalformedKeyError as e:
            logger.error(f"Ignoring the malformed key {key!r}: {e}")
            return

        obj = await self.store.get(namespace, name)
        if obj is None:
            logger.debug(f"Object {key!r} is gone; nothing to reconcile.")
            return

        # The store can return its cached object; never let it be modified in place.
        obj = obj.copy()
        object_logger = loggers.ObjectLogger(obj=obj, settings=self.settings)
        state = self.classify(obj)
        object_logger.debug(f"Reconciling in the {state.value} state, version {obj.resource_version!r}.")
        match state:
            case State.DELETING:
                await self.handle_deletion(obj, logger=object_logger)
            case State.ESTABLISHED:
                await self.handle_update(obj, logger=object_logger)
            case State.PENDING:
                await self.handle_creation(obj, logger=object_logger)

    def classify(self, obj: bodies.ManagedObject) -> State:
        return classify(obj, finalizer=self.finalizer)

    async def handle_creation(self, obj: bodies.ManagedObject, *, logger: typedefs.Logger) -> None:
        if finalizers.block_deletion(obj, finalizer=self.finalizer):
            obj = await self.store.update(obj)
            logger.info("The finalizer is added; the object is established.")
        await self.policy.create(obj=obj, logger=logger)

    async def handle_update(self, obj: bodies.ManagedObject, *, logger: typedefs.Logger) -> None:
        await self.policy.update(obj=obj, logger=logger)

    async def handle_deletion(self, obj: bodies.ManagedObject, *, logger: typedefs.Logger) -> None:
        # Without our finalizer, nothing was ever created by the policy, or it is already cleaned up.
        if not finalizers.is_deletion_blocked(obj, finalizer=self.finalizer):
            logger.debug("The deletion is not blocked by us; nothing to clean up.")
            return

        await self.policy.cleanup(obj=obj, logger=logger)
        finalizers.allow_deletion(obj, finalizer=self.finalizer)
        await self.store.update(obj)
        logger.info("The cleanup is done; the finalizer is removed.")
