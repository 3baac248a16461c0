"""
apiavailability CLI.

Commands:
    apiavailability run           Run the availability controller against a cluster
    apiavailability check NAME    Evaluate one APIService and print its condition

Usage::

    apiavailability run --workers 2
    apiavailability check v1beta1.metrics.k8s.io
"""

from __future__ import annotations

import json
import logging
import signal
import sys
from typing import Optional

import click

from apiavailability.config import get_config
from apiavailability.contracts.timeouts import K8S_INITIAL_SYNC_TIMEOUT_S
from apiavailability.controller import AvailableConditionController
from apiavailability.logger import configure_logging
from apiavailability.metrics import AvailabilityMetrics
from apiavailability.probe import ClusterServiceResolver
from apiavailability.storage import StoreType, detect_store_type, get_store
from apiavailability.watch import KubernetesWatcher

logger = logging.getLogger(__name__)


def _store_type(value: str) -> Optional[StoreType]:
    return None if value == "auto" else StoreType(value)


@click.group()
@click.version_option(package_name="apiavailability")
def main():
    """apiavailability - Available condition controller for aggregated APIs."""
    pass


@main.command()
@click.option("--kubeconfig", envvar="KUBECONFIG", help="Path to kubeconfig")
@click.option("--workers", type=int, help="Number of reconciliation workers")
@click.option("--store", "store_type", type=click.Choice(["auto", "kubernetes", "memory"]),
              help="Status store backend")
def run(kubeconfig: Optional[str], workers: Optional[int], store_type: Optional[str]):
    """Run the controller until interrupted."""
    overrides = {}
    if kubeconfig:
        overrides["kubeconfig"] = kubeconfig
    if workers:
        overrides["workers"] = workers
    if store_type:
        overrides["store_type"] = store_type
    config = get_config(**overrides)
    configure_logging(config.log_level, config.log_format)

    resolved_type = _store_type(config.store_type) or detect_store_type()
    if resolved_type == StoreType.KUBERNETES:
        store = get_store(resolved_type, kubeconfig=config.kubeconfig)
    else:
        store = get_store(resolved_type)

    metrics = AvailabilityMetrics(
        service_name=config.service_name,
        otlp_endpoint=config.otlp_endpoint,
        otlp_insecure=config.otlp_insecure,
        export_interval_ms=config.metrics_export_interval_ms,
    )
    controller = AvailableConditionController(
        store=store,
        resolver=ClusterServiceResolver(),
        config=config,
        metrics=metrics,
    )
    watcher = KubernetesWatcher(controller, kubeconfig=config.kubeconfig)

    def _terminate(signum, frame):
        logger.info(f"Received signal {signum}")
        controller.stop_event.set()

    signal.signal(signal.SIGTERM, _terminate)

    watcher.start()
    try:
        if not watcher.wait_for_sync(K8S_INITIAL_SYNC_TIMEOUT_S):
            click.echo("Timed out waiting for caches to sync", err=True)
            sys.exit(1)
        controller.run(config.workers)
    finally:
        watcher.stop()
        metrics.shutdown()


@main.command()
@click.argument("name")
@click.option("--kubeconfig", envvar="KUBECONFIG", help="Path to kubeconfig")
@click.option("--probe/--no-probe", default=True, help="Run the discovery probe")
@click.option("--verbose", "-v", is_flag=True, help="Log progress to stderr")
def check(name: str, kubeconfig: Optional[str], probe: bool, verbose: bool):
    """Evaluate APIService NAME once and print the computed condition."""
    config = get_config(kubeconfig=kubeconfig) if kubeconfig else get_config()
    configure_logging("debug" if verbose else "warning", "text")

    controller = AvailableConditionController(
        store=get_store(StoreType.MEMORY),
        resolver=ClusterServiceResolver() if probe else None,
        config=config,
    )
    watcher = KubernetesWatcher(controller, kubeconfig=config.kubeconfig)
    for source in watcher.sources:
        watcher.sync(source)

    try:
        evaluation = controller.evaluate(name)
    finally:
        controller.stop()
        controller.metrics.shutdown()

    if evaluation is None:
        click.echo(f"APIService {name} not found", err=True)
        sys.exit(1)

    payload = evaluation.condition.model_dump(mode="json", by_alias=True, exclude_none=True)
    click.echo(json.dumps(payload, indent=2))
    if evaluation.retry_error:
        sys.exit(2)


if __name__ == "__main__":
    main()
