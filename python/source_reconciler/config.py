"""
Reconcile settings.

Defaults live on the dataclass; the environment can override them and the
command line overrides the environment.
"""
import os
from dataclasses import dataclass
from typing import Mapping, Optional


@dataclass
class ReconcileSettings:
    """
    Settings for one reconcile invocation

    Attributes:
        namespace: Namespace of the resource
        poll_interval: Seconds between status checks
        timeout: Overall time budget in seconds
        kubeconfig: Path to a kubeconfig file
        context: Kubeconfig context
    """
    namespace: str = "flux-system"
    poll_interval: float = 2.0
    timeout: float = 300.0
    kubeconfig: Optional[str] = None
    context: Optional[str] = None

    def __post_init__(self):
        if not self.poll_interval > 0:
            raise ValueError(f"poll interval must be positive, got {self.poll_interval}")
        if not self.timeout > 0:
            raise ValueError(f"timeout must be positive, got {self.timeout}")

    @classmethod
    def from_env(cls, environ: Mapping[str, str] = os.environ) -> 'ReconcileSettings':
        """Build settings from FLUX_* variables and KUBECONFIG."""
        defaults = cls()
        return cls(
            namespace=environ.get("FLUX_NAMESPACE", defaults.namespace),
            poll_interval=float(environ.get("FLUX_POLL_INTERVAL", defaults.poll_interval)),
            timeout=float(environ.get("FLUX_TIMEOUT", defaults.timeout)),
            kubeconfig=environ.get("KUBECONFIG") or None,
            context=None
        )
