from typing import Any, Dict

from .namespace import desk_labels


def build_service_account(name: str, namespace: str, desk_name: str) -> Dict[str, Any]:
    """Builds the Desk's service identity, which lives in the trusted namespace."""
    return {
        "apiVersion": "v1",
        "kind": "ServiceAccount",
        "metadata": {
            "name": name,
            "namespace": namespace,
            "labels": desk_labels(desk_name),
        },
    }


def build_role_binding(
    cluster_role: str,
    namespace: str,
    service_account: str,
    service_account_namespace: str,
    desk_name: str,
) -> Dict[str, Any]:
    """
    Builds a RoleBinding granting a built-in ClusterRole (``view``, ``edit``)
    to the Desk's service account inside ``namespace``.
    """
    return {
        "apiVersion": "rbac.authorization.k8s.io/v1",
        "kind": "RoleBinding",
        "metadata": {
            "name": f"{service_account}-{cluster_role}",
            "namespace": namespace,
            "labels": desk_labels(desk_name),
        },
        "subjects": [
            {
                "kind": "ServiceAccount",
                "name": service_account,
                "namespace": service_account_namespace,
            }
        ],
        "roleRef": {
            "apiGroup": "rbac.authorization.k8s.io",
            "kind": "ClusterRole",
            "name": cluster_role,
        },
    }
