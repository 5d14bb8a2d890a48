from typing import Any, Dict

from ....crds.const import LABEL_DESK, LABEL_MANAGED


def desk_labels(desk_name: str) -> Dict[str, str]:
    return {LABEL_DESK: desk_name, LABEL_MANAGED: "true"}


def build_namespace(name: str, desk_name: str) -> Dict[str, Any]:
    """Builds one of the two isolated namespaces of a Desk."""
    return {
        "apiVersion": "v1",
        "kind": "Namespace",
        "metadata": {
            "name": name,
            "labels": desk_labels(desk_name),
        },
    }
