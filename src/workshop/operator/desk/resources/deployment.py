from typing import Any, Dict

from .namespace import desk_labels

KUBESHELL_NAME = "kubeshell"
KUBESHELL_PORT = 4200


def build_kubeshell_deployment(
    namespace: str,
    kubectl_namespace: str,
    service_account: str,
    owner: str,
    image: str,
    desk_name: str,
) -> Dict[str, Any]:
    """
    Builds the single-replica workspace shell.

    The shell runs in the trusted namespace and points kubectl at the Desk's
    default namespace.
    """
    selector = {"app": KUBESHELL_NAME}
    labels = {**desk_labels(desk_name), **selector}
    return {
        "apiVersion": "apps/v1",
        "kind": "Deployment",
        "metadata": {
            "name": KUBESHELL_NAME,
            "namespace": namespace,
            "labels": labels,
        },
        "spec": {
            "replicas": 1,
            "selector": {"matchLabels": selector},
            "template": {
                "metadata": {"labels": labels},
                "spec": {
                    "serviceAccountName": service_account,
                    "containers": [
                        {
                            "name": KUBESHELL_NAME,
                            "image": image,
                            "env": [
                                {"name": "KS_USER", "value": owner},
                                {"name": "KS_IN_CLUSTER", "value": "true"},
                                {"name": "KS_NAMESPACE", "value": kubectl_namespace},
                                {"name": "KS_ENABLE_SUDO", "value": "false"},
                            ],
                            "ports": [
                                {"protocol": "TCP", "containerPort": KUBESHELL_PORT}
                            ],
                        }
                    ],
                },
            },
        },
    }
