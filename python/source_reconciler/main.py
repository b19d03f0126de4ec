"""
Command-line entry point.

    source-reconcile bucket podinfo --namespace flux-system --timeout 120

Exits 0 when the resource was reconciled and reports Ready, 1 otherwise.
"""
import argparse
import logging
import sys
from typing import List, Optional

from source_reconciler.config import ReconcileSettings
from source_reconciler.errors import ReconcileError
from source_reconciler.kinds import KINDS, get_kind
from source_reconciler.kube_store import KubernetesResourceStore, load_api
from source_reconciler.orchestrator import ReconcileOrchestrator

logger = logging.getLogger(__name__)


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="source-reconcile",
        description="Trigger a reconciliation of a resource and wait for it to finish."
    )
    parser.add_argument('kind', choices=sorted(KINDS), help='Resource kind')
    parser.add_argument('name', help='Resource name')
    parser.add_argument('-n', '--namespace', help='Namespace of the resource (env: FLUX_NAMESPACE)')
    parser.add_argument('--timeout', type=float, help='Overall timeout in seconds (env: FLUX_TIMEOUT)')
    parser.add_argument('--poll-interval', type=float,
                        help='Seconds between status checks (env: FLUX_POLL_INTERVAL)')
    parser.add_argument('--kubeconfig', help='Path to the kubeconfig file (env: KUBECONFIG)')
    parser.add_argument('--context', help='Kubeconfig context to use')
    parser.add_argument('-v', '--verbose', action='store_true', help='Enable debug logging')
    return parser.parse_args(argv)


def build_settings(args: argparse.Namespace) -> ReconcileSettings:
    """Apply command-line flags on top of the environment."""
    settings = ReconcileSettings.from_env()
    return ReconcileSettings(
        namespace=args.namespace or settings.namespace,
        poll_interval=args.poll_interval if args.poll_interval is not None else settings.poll_interval,
        timeout=args.timeout if args.timeout is not None else settings.timeout,
        kubeconfig=args.kubeconfig or settings.kubeconfig,
        context=args.context or settings.context
    )


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point."""
    args = parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        stream=sys.stdout
    )

    try:
        settings = build_settings(args)
        kind = get_kind(args.kind)
        store = KubernetesResourceStore(kind, load_api(settings.kubeconfig, settings.context))
    except (ValueError, ReconcileError) as e:
        logger.error(str(e))
        return 1

    orchestrator = ReconcileOrchestrator(store, settings, kind_label=kind.display_name)
    result = orchestrator.reconcile(args.name)
    if not result.succeeded:
        logger.error(f"{result.outcome.value}: {result.message}")
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
