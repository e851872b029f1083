import logging

from kubernetes import config, client
from openshift.dynamic import DynamicClient
from typing_extensions import Protocol, override

from exc import ProviderError, NamespaceLookupError

LOG = logging.getLogger(__name__)


class Provider(Protocol):
    def namespace_annotations(self, name: str) -> dict[str, str]: ...


class KubernetesProvider(Provider):
    def __init__(self, request_timeout: float | None = None):
        """Allocate a Kubernetes dynamic client and Namespace API client"""

        super().__init__()

        try:
            config.load_config()
        except config.ConfigException as err:
            LOG.warning("unable to configure Kubernetes client: %s", err)
            raise ProviderError("unable to configure Kubernetes client")

        k8s_client = client.ApiClient()
        dyn_client = DynamicClient(k8s_client)

        self._client = dyn_client
        self._request_timeout = request_timeout
        self._namespace_resource = dyn_client.resources.get(
            api_version="v1", kind="Namespace"
        )

    @override
    def namespace_annotations(self, name):
        """Return the annotations of namespace `name`.

        Any failure (namespace not found, API error, timeout) is raised as
        NamespaceLookupError; it is never treated as "no annotations".
        """
        try:
            namespace_obj = self._namespace_resource.get(
                name=name, _request_timeout=self._request_timeout
            )
        except Exception as err:
            LOG.error("failed to look up namespace %s: %s", name, err)
            raise NamespaceLookupError(f"failed to look up namespace {name}") from err

        metadata = namespace_obj.to_dict().get("metadata") or {}
        return metadata.get("annotations") or {}
