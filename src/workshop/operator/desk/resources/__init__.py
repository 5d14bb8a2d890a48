from .deployment import build_kubeshell_deployment
from .ingress import build_kubeshell_ingress
from .namespace import build_namespace
from .rbac import build_role_binding, build_service_account
from .service import build_kubeshell_service

__all__ = [
    "build_kubeshell_deployment",
    "build_kubeshell_ingress",
    "build_namespace",
    "build_role_binding",
    "build_service_account",
    "build_kubeshell_service",
]
