"""
Logging in with the credentials found in the controller's environment.

Only the static credentials are supported: a pod's service account when
running in a cluster, or the kubeconfig files otherwise. The auth-providers
and the credential plugins of kubeconfigs are not executed.
"""
import os
from typing import Any

import yaml

from astertower._cogs.helpers import typedefs
from astertower._cogs.structs import credentials

SERVICE_ACCOUNT_DIR = '/var/run/secrets/kubernetes.io/serviceaccount'
IN_CLUSTER_SERVER = 'https://kubernetes.default.svc'
DEFAULT_KUBECONFIG = '~/.kube/config'


def login(*, logger: typedefs.Logger) -> credentials.ConnectionInfo:
    """ Use the first available source of credentials, the in-cluster one first. """
    sources = [
        ("service account", login_with_service_account),
        ("kubeconfig", login_with_kubeconfig),
    ]
    for source, fn in sources:
        info = fn()
        if info is not None:
            logger.debug(f"Logged in with the {source}.")
            return info
    raise credentials.LoginError("Cannot authenticate neither in-cluster, nor via kubeconfig.")


def login_with_service_account(**_: Any) -> credentials.ConnectionInfo | None:
    """ Use the pod's service account; ``None`` if not in a cluster. """
    token = _read_text(os.path.join(SERVICE_ACCOUNT_DIR, 'token'))
    if token is None:
        return None
    ca_path = os.path.join(SERVICE_ACCOUNT_DIR, 'ca.crt')
    return credentials.ConnectionInfo(
        server=IN_CLUSTER_SERVER,
        ca_path=ca_path if os.path.exists(ca_path) else None,
        token=token or None,
        default_namespace=_read_text(os.path.join(SERVICE_ACCOUNT_DIR, 'namespace')) or None,
    )


def login_with_kubeconfig(**_: Any) -> credentials.ConnectionInfo | None:
    """
    Use the current context of the kubeconfig files; ``None`` if there are none.

    Several files (in ``$KUBECONFIG``) are merged as ``kubectl`` does it:
    the first file that defines a value wins. The files that are listed but
    absent or broken are the errors, not a reason to look further.
    """
    paths = _kubeconfig_paths()
    if not paths:
        return None

    current_context: str | None = None
    sections: dict[str, dict[str, Any]] = {'contexts': {}, 'clusters': {}, 'users': {}}
    for path in paths:
        with open(path, encoding='utf-8') as f:
            config = yaml.safe_load(f.read()) or {}
        current_context = current_context or config.get('current-context')
        for section, entries in sections.items():
            for item in config.get(section) or []:
                entries.setdefault(item['name'], item.get(section[:-1]) or {})

    if not current_context:
        raise credentials.LoginError("The current context is not set in the kubeconfigs.")
    if current_context not in sections['contexts']:
        raise credentials.LoginError(f"The current context {current_context!r} is not defined.")
    context = sections['contexts'][current_context]
    cluster = sections['clusters'].get(context.get('cluster'), {})
    user = sections['users'].get(context.get('user'), {})
    if not cluster.get('server'):
        raise credentials.LoginError(f"The current context {current_context!r} has no server.")

    return credentials.ConnectionInfo(
        server=cluster['server'],
        ca_path=cluster.get('certificate-authority'),
        ca_data=cluster.get('certificate-authority-data'),
        insecure=cluster.get('insecure-skip-tls-verify'),
        certificate_path=user.get('client-certificate'),
        certificate_data=user.get('client-certificate-data'),
        private_key_path=user.get('client-key'),
        private_key_data=user.get('client-key-data'),
        username=user.get('username'),
        password=user.get('password'),
        token=user.get('token'),
        default_namespace=context.get('namespace'),
    )


def _kubeconfig_paths() -> list[str]:
    env = os.environ.get('KUBECONFIG', '')
    paths = [os.path.expanduser(path.strip()) for path in env.split(os.pathsep) if path.strip()]
    if paths:
        return paths
    default = os.path.expanduser(DEFAULT_KUBECONFIG)
    return [default] if os.path.exists(default) else []


def _read_text(path: str) -> str | None:
    try:
        with open(path, encoding='utf-8') as f:
            return f.read().strip()
    except FileNotFoundError:
        return None
