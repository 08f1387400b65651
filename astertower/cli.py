"""
The command-line interface: ``astertower run`` for one resource in a cluster.

All the options can also be set via the environment variables,
e.g. ``ASTERTOWER_RUN_NAMESPACE`` for ``run --namespace``.
"""
import asyncio
import dataclasses
import functools
from collections.abc import Callable
from typing import Any

import click

from astertower._cogs.aiokits import aioadapters
from astertower._cogs.clients import watching
from astertower._cogs.configs import configuration
from astertower._cogs.helpers import versions
from astertower._cogs.structs import credentials, references
from astertower._core.actions import loggers
from astertower._core.intents import policies
from astertower._core.reactor import running, working


@dataclasses.dataclass()
class CLIControls:
    """ What the embedding code can pass to the command, but the command line cannot. """
    stop_flag: aioadapters.Flag | None = None
    settings: configuration.OperatorSettings | None = None
    policy: policies.ReconciliationPolicy | None = None
    connection: credentials.ConnectionInfo | None = None


class LogFormatParamType(click.Choice):

    def __init__(self) -> None:
        super().__init__(choices=[v.name.lower() for v in loggers.LogFormat])

    def convert(self, value: Any, param: Any, ctx: Any) -> loggers.LogFormat:
        if isinstance(value, loggers.LogFormat):
            return value
        return loggers.LogFormat[super().convert(value, param, ctx).upper()]


LOGGING_OPTIONS = [
    click.option('-v', '--verbose', is_flag=True, help="Log the debug messages."),
    click.option('-d', '--debug', is_flag=True, help="Log the debug messages, also of asyncio."),
    click.option('-q', '--quiet', is_flag=True, help="Log only the warnings and errors."),
    click.option('--log-format', type=LogFormatParamType(), default='full'),
    click.option('--log-refkey', type=str, help="The JSON field for the objects' references."),
    click.option('--log-prefix/--no-log-prefix', default=None,
                 help="Prefix the messages with the objects' names (default: unless JSON)."),
]


def logging_options(fn: Callable[..., Any]) -> Callable[..., Any]:
    """ Configure the logging before the command, the same way in all commands. """
    @functools.wraps(fn)
    def wrapper(*args: Any,
                verbose: bool, debug: bool, quiet: bool,
                log_format: loggers.LogFormat, log_refkey: str | None, log_prefix: bool | None,
                **kwargs: Any) -> Any:
        loggers.configure(debug=debug, verbose=verbose, quiet=quiet,
                          log_format=log_format, log_refkey=log_refkey, log_prefix=log_prefix)
        return fn(*args, **kwargs)

    return functools.reduce(lambda f, option: option(f), reversed(LOGGING_OPTIONS), wrapper)


@click.version_option(version=versions.version or 'unknown', prog_name='astertower')
@click.group(name='astertower', context_settings=dict(
    auto_envvar_prefix='ASTERTOWER',
))
def main() -> None:
    pass


@main.command()
@logging_options
@click.option('--group', type=str, required=True, help="The resource's API group.")
@click.option('--version', type=str, required=True, help="The resource's API version.")
@click.option('--plural', type=str, required=True, help="The resource's plural name.")
@click.option('--cluster-scoped', 'cluster_scoped', is_flag=True,
              help="The resource is cluster-scoped, not namespaced.")
@click.option('-n', '--namespace', type=str, default=None, help="Serve only this namespace.")
@click.option('-A', '--all-namespaces', 'clusterwide', is_flag=True,
              help="Serve all namespaces (the default).")
@click.option('-w', '--workers', type=click.IntRange(min=1), default=None)
@click.option('--finalizer', type=str, default=None)
@click.option('--sync-timeout', type=float, default=None)
@click.make_pass_decorator(CLIControls, ensure=True)
def run(
        __controls: CLIControls,
        group: str,
        version: str,
        plural: str,
        cluster_scoped: bool,
        namespace: str | None,
        clusterwide: bool,
        workers: int | None,
        finalizer: str | None,
        sync_timeout: float | None,
) -> None:
    """ Start a controller process and reconcile the resource's objects. """
    if namespace and clusterwide:
        raise click.UsageError("Either --namespace or --all-namespaces can be used, not both.")
    if namespace and cluster_scoped:
        raise click.UsageError("Cluster-scoped resources cannot be served in a namespace.")

    settings = __controls.settings if __controls.settings is not None else configuration.OperatorSettings()
    if finalizer is not None:
        settings.persistence.finalizer = finalizer
    if sync_timeout is not None:
        settings.working.sync_timeout = sync_timeout

    resource = references.Resource(group=group, version=version, plural=plural,
                                   namespaced=not cluster_scoped)
    try:
        asyncio.run(running.cluster_operator(
            resource=resource,
            namespace=namespace,
            settings=settings,
            policy=__controls.policy,
            worker_count=workers,
            stop_flag=__controls.stop_flag,
            connection=__controls.connection,
        ))
    except asyncio.CancelledError:
        pass
    except (credentials.LoginError, working.CacheSyncError,
            watching.WatchingError, running.WatchingStoppedError) as e:
        raise click.ClickException(str(e)) from e
