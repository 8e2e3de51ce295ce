"""
Narrow wrapper around the Kubernetes API used by the controller.

All objects cross this boundary as plain JSON manifests (dicts with the
camelCase keys the API server uses), and every failure is translated into
the controller's own exception types.
"""

import functools
from typing import Any, Callable, Dict, List, Optional

import kubernetes
import urllib3
from kubernetes import client
from kubernetes.client.rest import ApiException

from common.constants import API_GROUP, API_VERSION, MIRROR_PLURAL
from common.logging_config import get_logger
from controller.config import API_TIMEOUT_SECONDS
from controller.exceptions import ClusterAPIError, ObjectNotFoundError

logger = get_logger(__name__)


def load_kube_config() -> None:
    """Load in-cluster configuration, falling back to the local kubeconfig."""
    try:
        kubernetes.config.load_incluster_config()
        logger.info("Loaded in-cluster Kubernetes configuration")
    except kubernetes.config.ConfigException:
        kubernetes.config.load_kube_config()
        logger.info("Loaded Kubernetes configuration from kubeconfig")


def _translate_errors(func: Callable) -> Callable:
    """Map ApiException and transport errors onto controller exceptions."""

    @functools.wraps(func)
    def wrapper(*args, **kwargs):
        try:
            return func(*args, **kwargs)
        except ApiException as e:
            if e.status == 404:
                raise ObjectNotFoundError(f"{func.__name__}: not found") from e
            raise ClusterAPIError(f"{func.__name__}: {e.status} {e.reason}", status=e.status) from e
        except urllib3.exceptions.HTTPError as e:
            raise ClusterAPIError(f"{func.__name__}: {e}") from e

    return wrapper


class KubernetesCluster:
    """
    Cluster client backed by the official Kubernetes Python client.
    """

    def __init__(
        self,
        api_client: Optional[client.ApiClient] = None,
        timeout: float = API_TIMEOUT_SECONDS
    ):
        self.api_client = api_client or client.ApiClient()
        self.core = client.CoreV1Api(self.api_client)
        self.custom = client.CustomObjectsApi(self.api_client)
        self.timeout = timeout

    def _serialize(self, obj: Any) -> Dict[str, Any]:
        return self.api_client.sanitize_for_serialization(obj)

    @_translate_errors
    def get_mirror(self, namespace: str, name: str) -> Dict[str, Any]:
        return self.custom.get_namespaced_custom_object(
            API_GROUP, API_VERSION, namespace, MIRROR_PLURAL, name,
            _request_timeout=self.timeout
        )

    @_translate_errors
    def get_config_map(self, namespace: str, name: str) -> Dict[str, Any]:
        config_map = self.core.read_namespaced_config_map(
            name, namespace, _request_timeout=self.timeout
        )
        return self._serialize(config_map)

    @_translate_errors
    def list_config_maps(self, namespace: str, label_selector: str = "") -> List[Dict[str, Any]]:
        response = self.core.list_namespaced_config_map(
            namespace, label_selector=label_selector, _request_timeout=self.timeout
        )
        return [self._serialize(item) for item in response.items]

    @_translate_errors
    def create_config_map(self, namespace: str, body: Dict[str, Any], field_manager: str) -> Dict[str, Any]:
        created = self.core.create_namespaced_config_map(
            namespace, body, field_manager=field_manager, _request_timeout=self.timeout
        )
        return self._serialize(created)

    @_translate_errors
    def replace_config_map(
        self,
        namespace: str,
        name: str,
        body: Dict[str, Any],
        field_manager: str
    ) -> Dict[str, Any]:
        replaced = self.core.replace_namespaced_config_map(
            name, namespace, body, field_manager=field_manager, _request_timeout=self.timeout
        )
        return self._serialize(replaced)

    @_translate_errors
    def create_event(self, namespace: str, body: Dict[str, Any]) -> None:
        self.core.create_namespaced_event(namespace, body, _request_timeout=self.timeout)

    def close(self) -> None:
        self.api_client.close()
