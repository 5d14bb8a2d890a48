from typing import Any, Dict

from .deployment import KUBESHELL_NAME, KUBESHELL_PORT
from .namespace import desk_labels


def desk_host(desk_name: str, domain: str) -> str:
    return f"{desk_name}.{domain}"


def build_kubeshell_ingress(namespace: str, desk_name: str, domain: str) -> Dict[str, Any]:
    """Builds the TLS-only Ingress exposing the shell at ``<desk>.<domain>``."""
    host = desk_host(desk_name, domain)
    return {
        "apiVersion": "networking.k8s.io/v1",
        "kind": "Ingress",
        "metadata": {
            "name": KUBESHELL_NAME,
            "namespace": namespace,
            "labels": desk_labels(desk_name),
            "annotations": {
                "kubernetes.io/ingress.allow-http": "false",
                "ingress.kubernetes.io/rewrite-target": "/",
            },
        },
        "spec": {
            "tls": [{"hosts": [host]}],
            "rules": [
                {
                    "host": host,
                    "http": {
                        "paths": [
                            {
                                "path": f"/{KUBESHELL_NAME}",
                                "pathType": "Prefix",
                                "backend": {
                                    "service": {
                                        "name": KUBESHELL_NAME,
                                        "port": {"number": KUBESHELL_PORT},
                                    }
                                },
                            }
                        ]
                    },
                }
            ],
        },
    }
