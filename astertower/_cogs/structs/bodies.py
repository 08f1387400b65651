"""
All the structures coming from/to the API, and the managed object model.

Everything marked "raw" is a plain unwrapped unprocessed data as JSON-decoded
from the API, usually as retrieved in watching or fetching API calls.
"Input" is a parsed JSON as is, while "event" is an "input" without "errors".
All non-used payload falls into `Any`, and is not type-checked.

The engine itself never works with the raw bodies: they are converted
to :class:`ManagedObject` at the edge (in the stores and informers),
so that the identity, the version, the finalizers, and the deletion mark
are explicitly typed, and the finalizers are a true set.
"""
import copy
import dataclasses
import datetime
from collections.abc import Mapping
from typing import Any

import iso8601
from typing_extensions import Literal, TypedDict

from astertower._cogs.structs import keys

# ``None`` is used for the listing, when the pseudo-watch-stream is simulated.
RawInputType = Literal[None, 'ADDED', 'MODIFIED', 'DELETED', 'ERROR']
RawEventType = Literal[None, 'ADDED', 'MODIFIED', 'DELETED']


class RawMeta(TypedDict, total=False):
    uid: str
    name: str
    namespace: str
    labels: Mapping[str, str]
    annotations: Mapping[str, str]
    finalizers: list[str]
    resourceVersion: str
    deletionTimestamp: str
    creationTimestamp: str


class RawBody(TypedDict, total=False):
    apiVersion: str
    kind: str
    metadata: RawMeta
    spec: Mapping[str, Any]
    status: Mapping[str, Any]


# A special payload for type==ERROR (this is not a connection or client error).
class RawError(TypedDict, total=False):
    apiVersion: str     # usually: Literal['v1']
    kind: str           # usually: Literal['Status']
    metadata: Mapping[Any, Any]
    code: int
    reason: str
    status: str
    message: str


# As received from the stream before processing the errors and special cases.
class RawInput(TypedDict, total=True):
    type: RawInputType
    object: RawBody | RawError


# As passed to the informers after processing the errors and special cases.
class RawEvent(TypedDict, total=True):
    type: RawEventType
    object: RawBody


@dataclasses.dataclass
class ManagedObject:
    """
    The custom resource under reconciliation, as seen at some point in time.

    The resource version is an opaque token: it is only compared for equality,
    both in the change detection and in the optimistic concurrency of writes.

    The raw body is kept as is for the payload (spec, status, labels, etc.);
    the explicit fields take precedence over it when converted back to raw.
    """
    name: str
    namespace: str | None = None
    uid: str | None = None
    resource_version: str | None = None
    finalizers: set[str] = dataclasses.field(default_factory=set)
    deletion_timestamp: datetime.datetime | None = None
    raw: RawBody = dataclasses.field(default_factory=lambda: RawBody())

    @property
    def key(self) -> keys.ObjectKey:
        return keys.make_key(self.namespace, self.name)

    @property
    def spec(self) -> Mapping[str, Any]:
        return self.raw.get('spec', {})

    @property
    def status(self) -> Mapping[str, Any]:
        return self.raw.get('status', {})

    def copy(self) -> "ManagedObject":
        """ A deep copy: the cached objects are never mutated in place. """
        return copy.deepcopy(self)

    @classmethod
    def from_raw(cls, body: RawBody) -> "ManagedObject":
        meta = body.get('metadata', {})
        deletion_timestamp = meta.get('deletionTimestamp')
        return cls(
            name=meta['name'],
            namespace=meta.get('namespace') or None,
            uid=meta.get('uid'),
            resource_version=meta.get('resourceVersion'),
            finalizers=set(meta.get('finalizers') or []),
            deletion_timestamp=iso8601.parse_date(deletion_timestamp) if deletion_timestamp else None,
            raw=copy.deepcopy(body),
        )

    def to_raw(self) -> RawBody:
        body = copy.deepcopy(self.raw)
        meta = body.setdefault('metadata', RawMeta())
        meta['name'] = self.name
        for field, value in [
            ('namespace', self.namespace),
            ('uid', self.uid),
            ('resourceVersion', self.resource_version),
        ]:
            if value is not None:
                meta[field] = value  # type: ignore[literal-required]
            else:
                meta.pop(field, None)  # type: ignore[misc]
        if self.finalizers:
            meta['finalizers'] = sorted(self.finalizers)
        else:
            meta.pop('finalizers', None)
        if self.deletion_timestamp is not None:
            meta['deletionTimestamp'] = format_timestamp(self.deletion_timestamp)
        else:
            meta.pop('deletionTimestamp', None)
        return body


def format_timestamp(value: datetime.datetime) -> str:
    if value.tzinfo is None:
        value = value.replace(tzinfo=datetime.timezone.utc)
    value = value.astimezone(datetime.timezone.utc).replace(microsecond=0)
    return value.isoformat().replace('+00:00', 'Z')
