"""
Kubernetes operator for Desk custom resources.

The kopf handlers here are kept thin and delegate to the reconciliation engine
under ``workshop.operator.desk``:
- Schema registration (desk/schema.py)
- The local Desk mirror (desk/cache.py)
- Resource creation and removal (desk/provisioner.py)
- Stale namespace cleanup and self-healing (desk/garbage.py)
- Expiration handling (desk/lifecycle.py)
- The per-Desk state machine (desk/reconciler.py)
"""
import asyncio
import logging
from typing import Any, Dict, Optional

import kopf
from kubernetes import client

from ..crds.client import DeskClient
from ..crds.const import LABEL_MANAGED
from ..crds.errors import KubeConfigError, WorkshopException
from ..utils.k8s import load_kube_config
from .desk.cache import DeskWatchCache
from .desk.garbage import GarbageCollector
from .desk.lifecycle import ExpirationSweeper
from .desk.provisioner import ResourceProvisioner
from .desk.reconciler import DeskReconciler
from .desk.schema import SchemaManager
from .settings import ControllerSettings


def build_reconciler(config: ControllerSettings, logger: logging.Logger) -> DeskReconciler:
    cache = DeskWatchCache(logger)
    return DeskReconciler(
        logger=logger,
        schema=SchemaManager(logger, timeout=config.schema_timeout),
        cache=cache,
        provisioner=ResourceProvisioner(
            logger, domain=config.domain, image=config.kubeshell_image
        ),
        collector=GarbageCollector(logger, cache),
        desk_client=DeskClient(),
        sync_timeout=config.initial_sync_timeout,
        terminate_expired=config.terminate_expired,
    )


def connection_info() -> kopf.ConnectionInfo:
    """Hand the loaded kubernetes client configuration over to kopf."""
    cfg = client.Configuration.get_default_copy()
    header = cfg.get_api_key_with_prefix("authorization")
    scheme: Optional[str] = None
    token: Optional[str] = None
    if header:
        scheme, _, token = header.partition(" ")
        if not token:
            scheme, token = "Bearer", scheme

    return kopf.ConnectionInfo(
        server=cfg.host,
        ca_path=cfg.ssl_ca_cert,
        insecure=not cfg.verify_ssl,
        username=cfg.username or None,
        password=cfg.password or None,
        scheme=scheme,
        token=token,
        certificate_path=cfg.cert_file,
        private_key_path=cfg.key_file,
    )


@kopf.on.login()
def login(memo: kopf.Memo, logger: logging.Logger, **kwargs: Any) -> kopf.ConnectionInfo:
    """Authenticate kopf the same way the engine's kubernetes client is."""
    config = ControllerSettings.from_memo(memo)
    try:
        load_kube_config(config.kubeconfig, logger)
    except KubeConfigError as e:
        logger.error(str(e))
        raise kopf.PermanentError("Could not configure Kubernetes client.")
    return connection_info()


@kopf.on.startup()
async def on_startup(
    settings: kopf.OperatorSettings,
    memo: kopf.Memo,
    logger: logging.Logger,
    **kwargs: Any,
) -> None:
    """
    Handle the startup of the operator.

    Brings the Desk reconciler up and starts the expiration sweep. Any failure
    here is fatal: a controller that cannot register its schema or confirm its
    view of the cluster must not run.
    """
    config = ControllerSettings.from_memo(memo)
    try:
        load_kube_config(config.kubeconfig, logger)
    except KubeConfigError as e:
        logger.error(str(e))
        raise kopf.PermanentError("Could not configure Kubernetes client.")

    # All logs by default go to the k8s event api making api server flooding
    # likely. Disable event posting to reduce API load.
    settings.posting.enabled = False

    reconciler = build_reconciler(config, logger)
    try:
        await reconciler.start()
    except (WorkshopException, client.ApiException) as e:
        logger.error(f"Desk controller failed to start: {e}")
        raise kopf.PermanentError(f"Desk controller failed to start: {e}")
    memo.reconciler = reconciler

    sweeper = ExpirationSweeper(logger, reconciler.desk_client)
    memo.sweeper_task = asyncio.get_running_loop().create_task(
        sweeper.run(interval_seconds=config.expiration_interval)
    )
    logger.info("Operator started.")


@kopf.on.cleanup()
async def on_cleanup(memo: kopf.Memo, logger: logging.Logger, **kwargs: Any) -> None:
    task = memo.get("sweeper_task")
    if task is not None:
        task.cancel()
        await asyncio.gather(task, return_exceptions=True)

    reconciler = memo.get("reconciler")
    if reconciler is not None:
        await reconciler.stop()
    logger.info("Operator stopped.")


@kopf.on.event("", "v1", "namespaces", labels={LABEL_MANAGED: "true"})
async def on_namespace_event(
    event: Dict[str, Any], body: kopf.Body, memo: kopf.Memo, **kwargs: Any
) -> None:
    """
    Restore namespaces that were deleted while their Desk still exists.

    Async so it runs on the event loop: the reconciler's queues and worker
    tasks belong to that loop, and sync handlers run in an executor thread.
    """
    if event.get("type") != "DELETED":
        return
    reconciler = memo.get("reconciler")
    if reconciler is None:
        return
    reconciler.on_namespace_deleted(dict(body))


@kopf.on.probe(id="desks")
def tracked_desks(memo: kopf.Memo, **kwargs: Any) -> int:
    reconciler = memo.get("reconciler")
    return reconciler.tracked_count if reconciler is not None else 0
