import dataclasses
import urllib.parse
from collections.abc import Mapping


@dataclasses.dataclass(frozen=True)
class Resource:
    """
    The kind of the reconciled objects, as addressed in the API's URLs.

    The core resources have an empty group, e.g. ``Resource('', 'v1', 'pods')``.
    """
    group: str
    version: str
    plural: str
    namespaced: bool = True

    def __repr__(self) -> str:
        return f'{self.plural}.{self.version}.{self.group}'.strip('.')

    @property
    def api_prefix(self) -> str:
        return f'/api/{self.version}' if not self.group else f'/apis/{self.group}/{self.version}'

    def get_url(
            self,
            *,
            namespace: str | None = None,
            name: str | None = None,
            params: Mapping[str, str] | None = None,
    ) -> str:
        """
        Build a server-relative URL of a list (without a name) or of an object.

        Without a namespace, the list covers all namespaces. The objects
        of the namespaced resources can only be addressed in their namespaces.
        """
        if not self.namespaced and namespace is not None:
            raise ValueError(f"{self!r} is cluster-scoped; no namespaces are possible.")
        if self.namespaced and namespace is None and name is not None:
            raise ValueError(f"{self!r} is namespaced; a namespace is needed for {name!r}.")

        url = self.api_prefix
        if namespace is not None:
            url += f'/namespaces/{namespace}'
        url += f'/{self.plural}'
        if name is not None:
            url += f'/{name}'
        if params:
            url += '?' + urllib.parse.urlencode(params)
        return url
