"""
Source Reconciler - request-and-wait reconciliation

Triggers an out-of-band reconciliation of a controller-managed resource and
waits for the controller to report the result:
- Stamps a reconcile request annotation on the resource (optimistic writes)
- Waits for the controller to acknowledge the request (status.lastHandledReconcileAt)
- Waits for the Ready condition of the current generation
"""

__version__ = "0.1.0"
