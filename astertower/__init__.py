"""
The main Astertower module for all the exported functions & classes.
"""
# isort: skip_file

# Unlike all other places, where we import other modules and refer
# the functions via the modules, this is the framework's top-level interface,
# as it is seen by the users. So, we export the individual functions.

from astertower._cogs.aiokits.aioadapters import (
    Flag,
)
from astertower._cogs.clients.errors import (
    APIError,
    APIClientError,
    APIServerError,
    APIUnauthorizedError,
    APIForbiddenError,
    APINotFoundError,
    APIConflictError,
)
from astertower._cogs.clients.piggybacking import (
    login,
    login_with_service_account,
    login_with_kubeconfig,
)
from astertower._cogs.configs.configuration import (
    OperatorSettings,
    QueueingSettings,
    WorkingSettings,
    WatchingSettings,
    NetworkingSettings,
    PersistenceSettings,
)
from astertower._cogs.helpers.typedefs import (
    Logger,
)
from astertower._cogs.helpers.versions import (
    version as __version__,
)
from astertower._cogs.structs.bodies import (
    ManagedObject,
)
from astertower._cogs.structs.credentials import (
    LoginError,
    ConnectionInfo,
)
from astertower._cogs.structs.finalizers import (
    is_deletion_ongoing,
    is_deletion_blocked,
    block_deletion,
    allow_deletion,
)
from astertower._cogs.structs.keys import (
    ObjectKey,
    MalformedKeyError,
    make_key,
    split_key,
)
from astertower._cogs.structs.references import (
    Resource,
)
from astertower._core.actions.loggers import (
    LogFormat,
    ObjectLogger,
    configure,
)
from astertower._core.intents.policies import (
    ReconciliationPolicy,
    NoopPolicy,
)
from astertower._core.reactor.adapting import (
    EventAdapter,
)
from astertower._core.reactor.informing import (
    DeletedFinalStateUnknown,
    EventHandler,
    WatchSource,
    ObjectStore,
    Informer,
    ClusterStore,
)
from astertower._core.reactor.queueing import (
    RateLimitingQueue,
)
from astertower._core.reactor.ratelimiting import (
    RateLimiter,
    ItemExponentialFailureRateLimiter,
    ItemFastSlowRateLimiter,
    BucketRateLimiter,
    MaxOfRateLimiter,
    default_controller_rate_limiter,
)
from astertower._core.reactor.reconciling import (
    State,
    Reconciler,
)
from astertower._core.reactor.running import (
    Controller,
    WatchingStoppedError,
    run,
    operator,
    cluster_operator,
)
from astertower._core.reactor.working import (
    CacheSyncError,
    WorkerPool,
)
from astertower._kits.memstore import (
    MemoryStore,
)

__all__ = [
    'Flag',
    'APIError',
    'APIClientError',
    'APIServerError',
    'APIUnauthorizedError',
    'APIForbiddenError',
    'APINotFoundError',
    'APIConflictError',
    'login',
    'login_with_service_account',
    'login_with_kubeconfig',
    'OperatorSettings',
    'QueueingSettings',
    'WorkingSettings',
    'WatchingSettings',
    'NetworkingSettings',
    'PersistenceSettings',
    'Logger',
    'ManagedObject',
    'LoginError',
    'ConnectionInfo',
    'is_deletion_ongoing',
    'is_deletion_blocked',
    'block_deletion',
    'allow_deletion',
    'ObjectKey',
    'MalformedKeyError',
    'make_key',
    'split_key',
    'Resource',
    'LogFormat',
    'ObjectLogger',
    'configure',
    'ReconciliationPolicy',
    'NoopPolicy',
    'EventAdapter',
    'DeletedFinalStateUnknown',
    'EventHandler',
    'WatchSource',
    'ObjectStore',
    'Informer',
    'ClusterStore',
    'RateLimitingQueue',
    'RateLimiter',
    'ItemExponentialFailureRateLimiter',
    'ItemFastSlowRateLimiter',
    'BucketRateLimiter',
    'MaxOfRateLimiter',
    'default_controller_rate_limiter',
    'State',
    'Reconciler',
    'Controller',
    'WatchingStoppedError',
    'run',
    'operator',
    'cluster_operator',
    'CacheSyncError',
    'WorkerPool',
    'MemoryStore',
]
