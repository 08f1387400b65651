"""
Detecting the project's own version.

The version is determined only once at startup when the code is loaded,
and is used only for self-identification (e.g. in the HTTP User-Agent).
"""
import importlib.metadata

version: str | None = None

try:
    name, *_ = __name__.split('.')  # usually "astertower", unless renamed/forked.
    version = importlib.metadata.version(name)
except importlib.metadata.PackageNotFoundError:
    pass  # running from a source tree without installation.
