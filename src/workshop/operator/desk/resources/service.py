from typing import Any, Dict

from .deployment import KUBESHELL_NAME, KUBESHELL_PORT
from .namespace import desk_labels


def build_kubeshell_service(namespace: str, desk_name: str) -> Dict[str, Any]:
    """Builds the Service fronting the workspace shell."""
    return {
        "apiVersion": "v1",
        "kind": "Service",
        "metadata": {
            "name": KUBESHELL_NAME,
            "namespace": namespace,
            "labels": desk_labels(desk_name),
        },
        "spec": {
            "selector": {"app": KUBESHELL_NAME},
            "ports": [
                {
                    "protocol": "TCP",
                    "port": KUBESHELL_PORT,
                    "targetPort": KUBESHELL_PORT,
                }
            ],
        },
    }
