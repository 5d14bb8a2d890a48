"""Helpers shared by everything that talks to the Kubernetes API."""
import logging
from typing import Any, Dict, Optional

from kubernetes import client, config

from ..crds.errors import KubeConfigError


def load_kube_config(
    kubeconfig: Optional[str] = None, logger: Optional[logging.Logger] = None
) -> None:
    """
    Configure the default kubernetes client.

    An explicit kubeconfig path wins. Otherwise the in-cluster service account
    is tried first, then the user's local kubeconfig.
    """
    logger = logger or logging.getLogger(__name__)
    if kubeconfig:
        try:
            config.load_kube_config(config_file=kubeconfig)
        except (config.ConfigException, OSError) as e:
            raise KubeConfigError(f"Could not load kubeconfig '{kubeconfig}': {e}") from e
        logger.info(f"Using kubeconfig '{kubeconfig}'.")
        return

    try:
        config.load_incluster_config()
        logger.info("Using in-cluster Kubernetes configuration.")
    except config.ConfigException:
        try:
            config.load_kube_config()
            logger.info("Using local kubeconfig.")
        except (config.ConfigException, OSError) as e:
            raise KubeConfigError(f"Could not configure Kubernetes client: {e}") from e


def to_dict(obj: Any) -> Dict[str, Any]:
    """
    Convert a kubernetes model object into its JSON-shaped dict.

    Plain dicts (as returned by CustomObjectsApi) pass through unchanged.
    """
    if obj is None:
        return {}
    if isinstance(obj, dict):
        return obj
    return client.ApiClient().sanitize_for_serialization(obj)


def owner_references(obj: Dict[str, Any]) -> list:
    return (obj.get("metadata") or {}).get("ownerReferences") or []
