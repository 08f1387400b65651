import logging

import pytest

from astertower._core.actions.loggers import HANDLER_NAME, LogFormat, ObjectFormatter, \
                                             ObjectJsonFormatter, configure, make_formatter


@pytest.fixture(autouse=True)
def _restore_root_logger():
    logger = logging.getLogger()
    level, handlers = logger.level, logger.handlers[:]
    yield
    logger.handlers[:] = handlers
    logger.setLevel(level)


def _own_handlers():
    return [handler for handler in logging.getLogger().handlers if handler.get_name() == HANDLER_NAME]


def test_own_handler_is_added():
    configure()
    handlers = _own_handlers()
    assert len(handlers) == 1
    assert isinstance(handlers[0].formatter, ObjectFormatter)


def test_reconfiguration_replaces_own_handler():
    configure()
    configure(log_format=LogFormat.JSON)
    handlers = _own_handlers()
    assert len(handlers) == 1
    assert isinstance(handlers[0].formatter, ObjectJsonFormatter)


def test_foreign_handlers_are_kept():
    foreign = logging.NullHandler()
    logging.getLogger().addHandler(foreign)
    configure()
    assert foreign in logging.getLogger().handlers


@pytest.mark.parametrize('kwargs, level', [
    (dict(), logging.INFO),
    (dict(verbose=True), logging.DEBUG),
    (dict(debug=True), logging.DEBUG),
    (dict(quiet=True), logging.WARNING),
])
def test_log_levels(kwargs, level):
    configure(**kwargs)
    assert logging.getLogger().level == level


def test_asyncio_logs_are_muted_unless_debugging():
    configure(verbose=True)
    assert not logging.getLogger('asyncio').propagate
    configure(debug=True)
    assert logging.getLogger('asyncio').propagate


@pytest.mark.parametrize('log_format, log_prefix, cls, prefixed', [
    (LogFormat.FULL, None, ObjectFormatter, True),
    (LogFormat.PLAIN, None, ObjectFormatter, True),
    ('%(message)s', None, ObjectFormatter, True),
    (LogFormat.JSON, None, ObjectJsonFormatter, False),
    (LogFormat.FULL, False, ObjectFormatter, False),
    (LogFormat.JSON, True, ObjectJsonFormatter, True),
])
def test_formatters_by_format_and_prefixing(log_format, log_prefix, cls, prefixed):
    formatter = make_formatter(log_format=log_format, log_prefix=log_prefix)
    assert type(formatter) is cls
    assert formatter.prefixed is prefixed


def test_custom_format_strings_are_used():
    formatter = make_formatter(log_format='>> %(message)s')
    assert formatter.format(logging.makeLogRecord({'msg': 'hello'})) == '>> hello'


def test_unsupported_formats_are_rejected():
    with pytest.raises(ValueError, match=r"Unsupported log format"):
        make_formatter(log_format=123)
