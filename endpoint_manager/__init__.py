"""Control-plane floating IP failover and service mirroring for Kubernetes."""

__version__ = "0.1.0"
