"""
The settings of a controller, grouped by the concern.

All the settings have the defaults fit for a typical single-resource controller.
The settings object is mutable, so it can be tuned after it is created, but
the changes made after the controller has started are not guaranteed to apply.
"""
import dataclasses


@dataclasses.dataclass
class QueueingSettings:
    """
    Settings for the keys' queue and its retry backoffs.
    """

    base_delay: float = 0.005
    """
    The first per-key backoff delay (in seconds) after a failed reconciliation.
    Every next consecutive failure of the same key doubles the delay.
    """

    max_delay: float = 1000.0
    """
    The ceiling of the per-key backoff delays (in seconds).
    The failing keys are retried at least this often, indefinitely.
    """

    bucket_qps: float = 10.0
    """
    The overall rate (per second) of the rate-limited re-additions of all keys.
    It protects the API from retry storms when many objects fail at once.
    """

    bucket_burst: int = 100
    """
    How many rate-limited re-additions can happen at once before the overall
    rate (``bucket_qps``) is enforced.
    """


@dataclasses.dataclass
class WorkingSettings:
    """
    Settings for the worker pool and its startup/shutdown.
    """

    workers: int = 1
    """
    How many workers process the queued keys concurrently (for different keys).
    The same key is never processed by two workers at the same time.
    """

    sync_timeout: float | None = 60.0
    """
    For how long (in seconds) to wait for the caches' initial synchronisation.
    If the caches are not synced in time, the controller fails to start.
    ``None`` means waiting forever (or until stopped).
    """

    sync_interval: float = 0.1
    """
    How often (in seconds) to re-check whether the caches are synced.
    """

    exit_timeout: float = 2.0
    """
    How long the workers can finish their current keys when stopping
    before they are cancelled.
    """


@dataclasses.dataclass
class WatchingSettings:
    """
    Settings for the watch-streams of the objects.
    """

    server_timeout: float | None = None
    """
    For how long (in seconds) the server should keep one watch-stream open.
    ``None`` leaves it to the server's own limits.
    """

    client_timeout: float | None = None
    """
    The total timeout (in seconds) of one watch-stream on the client side.
    ``None`` means no timeout: the stream lasts as long as the server wants.
    """

    connect_timeout: float | None = None
    """
    The connection timeout (in seconds) of the watch-streams.
    ``None`` falls back to ``networking.connect_timeout``.
    """

    reconnect_backoff: float = 0.1
    """
    The pause (in seconds) before re-listing or resuming a failed watch-stream.
    """


@dataclasses.dataclass
class NetworkingSettings:
    """
    Settings for the regular API requests: reading, listing, and writing.

    The failed requests are not retried: they fail the reconciliation,
    and the key is retried by the queue with its own backoffs.
    """

    request_timeout: float | None = 5 * 60
    """
    The total timeout (in seconds) of one request, including the response.
    """

    connect_timeout: float | None = None
    """
    The timeout (in seconds) of the TCP connection to the API server.
    """


@dataclasses.dataclass
class PersistenceSettings:

    finalizer: str = 'astros.astertower.kasterism.io'
    """
    A string marker to be put on a set of finalizers to block the object
    from being deleted without the controller's permission.
    """


@dataclasses.dataclass
class OperatorSettings:
    queueing: QueueingSettings = dataclasses.field(default_factory=QueueingSettings)
    working: WorkingSettings = dataclasses.field(default_factory=WorkingSettings)
    watching: WatchingSettings = dataclasses.field(default_factory=WatchingSettings)
    networking: NetworkingSettings = dataclasses.field(default_factory=NetworkingSettings)
    persistence: PersistenceSettings = dataclasses.field(default_factory=PersistenceSettings)
