from prometheus_client import CollectorRegistry

# Private registry, separate from prometheus_client's global default.
REGISTRY = CollectorRegistry()
