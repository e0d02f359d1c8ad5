"""svcplane - reconcile platform service definitions onto a Kubernetes cluster."""

__version__ = "0.1.0"
