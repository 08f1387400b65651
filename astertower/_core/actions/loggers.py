"""
Per-object logging and the formatting of the controller's logs.

Every message about a specific object is logged via :class:`ObjectLogger`,
which attaches the object's reference (kind, namespace, name, uid) to the records.
The formatters put it either as a ``[namespace/name]`` prefix of the message,
or as a separate field of the JSON records, or both.
"""
import copy
import enum
import logging
from collections.abc import MutableMapping
from typing import Any

from pythonjsonlogger.core import RESERVED_ATTRS
from pythonjsonlogger.json import JsonFormatter

from astertower._cogs.configs import configuration
from astertower._cogs.helpers import typedefs
from astertower._cogs.structs import bodies

logger = logging.getLogger('astertower.objects')

DEFAULT_JSON_REFKEY = 'object'

# Our handler on the root logger, to be replaced on re-configuration.
HANDLER_NAME = 'astertower'


class LogFormat(enum.Enum):
    PLAIN = '%(message)s'
    FULL = '%(asctime)s %(levelname)-8s %(name)s: %(message)s'
    JSON = '-json-'  # never used as a format string


class ObjectFormatter(logging.Formatter):
    """
    A text formatter that optionally prefixes the messages with the objects' names.
    """

    def __init__(self, *args: Any, prefixed: bool = False, **kwargs: Any) -> None:
        super().__init__(*args, **kwargs)
        self.prefixed = prefixed

    def format(self, record: logging.LogRecord) -> str:
        ref = getattr(record, 'k8s_ref', None)
        if self.prefixed and ref:
            namespace, name = ref.get('namespace'), ref.get('name')
            record = copy.copy(record)  # other handlers get the same record
            record.msg = f"[{namespace}/{name}] {record.msg}" if namespace else f"[{name}] {record.msg}"
        return super().format(record)


class ObjectJsonFormatter(ObjectFormatter, JsonFormatter):
    """
    A JSON formatter with the object's reference as a field, and a severity.
    """

    def __init__(self, *args: Any, refkey: str | None = None, **kwargs: Any) -> None:
        kwargs['reserved_attrs'] = {*kwargs.get('reserved_attrs', RESERVED_ATTRS), 'k8s_ref', 'settings'}
        kwargs.setdefault('timestamp', True)
        super().__init__(*args, **kwargs)
        self.refkey = refkey or DEFAULT_JSON_REFKEY

    def add_fields(
            self,
            log_record: dict[str, Any],
            record: logging.LogRecord,
            message_dict: dict[str, Any],
    ) -> None:
        super().add_fields(log_record, record, message_dict)
        if hasattr(record, 'k8s_ref'):
            log_record[self.refkey] = getattr(record, 'k8s_ref')
        log_record.setdefault('severity', _severity(record.levelno))


def _severity(levelno: int) -> str:
    for limit, severity in [(logging.DEBUG, 'debug'), (logging.INFO, 'info'),
                            (logging.WARNING, 'warn'), (logging.ERROR, 'error')]:
        if levelno <= limit:
            return severity
    return 'fatal'


class ObjectLogger(typedefs.LoggerAdapter):
    """
    A logger for the messages about one object, made per reconciliation.

    The reference is copied from the object when the logger is made,
    so the changes of the object do not affect the logged reference.
    """

    def __init__(self, *, obj: bodies.ManagedObject, settings: configuration.OperatorSettings) -> None:
        super().__init__(logger, dict(
            settings=settings,
            k8s_ref=dict(
                apiVersion=obj.raw.get('apiVersion'),
                kind=obj.raw.get('kind'),
                name=obj.name,
                uid=obj.uid,
                namespace=obj.namespace,
            ),
        ))

    def process(
            self,
            msg: str,
            kwargs: MutableMapping[str, Any],
    ) -> tuple[str, MutableMapping[str, Any]]:
        # The adapter's extras would replace the call's extras; both are kept instead.
        kwargs["extra"] = (self.extra or {}) | kwargs.get('extra', {})
        return msg, kwargs


def configure(
        debug: bool | None = None,
        verbose: bool | None = None,
        quiet: bool | None = None,
        log_format: LogFormat | str = LogFormat.FULL,
        log_prefix: bool | None = None,
        log_refkey: str | None = None,
) -> None:
    """
    Log to stderr via our own root handler, replacing it if configured before.
    """
    handler = logging.StreamHandler()
    handler.set_name(HANDLER_NAME)
    handler.setFormatter(make_formatter(log_format=log_format, log_prefix=log_prefix, log_refkey=log_refkey))

    root = logging.getLogger()
    root.handlers[:] = [h for h in root.handlers if h.get_name() != HANDLER_NAME] + [handler]
    root.setLevel(logging.DEBUG if debug or verbose else logging.WARNING if quiet else logging.INFO)

    # The event loop's own messages are only shown in the debug mode.
    asyncio_logger = logging.getLogger('asyncio')
    asyncio_logger.propagate = bool(debug)
    if not debug:
        asyncio_logger.handlers[:] = [logging.NullHandler()]


def make_formatter(
        log_format: LogFormat | str = LogFormat.FULL,
        log_prefix: bool | None = None,
        log_refkey: str | None = None,
) -> ObjectFormatter:
    """
    Make a formatter for a log format; the text ones are prefixed by default.
    """
    prefixed = log_prefix if log_prefix is not None else log_format is not LogFormat.JSON
    match log_format:
        case LogFormat.JSON:
            return ObjectJsonFormatter(refkey=log_refkey, prefixed=prefixed)
        case LogFormat():
            return ObjectFormatter(log_format.value, prefixed=prefixed)
        case str():
            return ObjectFormatter(log_format, prefixed=prefixed)
        case _:
            raise ValueError(f"Unsupported log format: {log_format!r}")
