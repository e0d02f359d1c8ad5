"""
Network configuration normalization.

Service definitions store network configuration in one of two shapes:

    # legacy: one port at the top level
    {"container_port": 8080, "service_port": 80, "service_type": "NodePort", "node_port": 30080}

    # v2: endpoint type plus an ordered port list
    {"service_type": "NodePort", "ports": [{"container_port": 8080, "service_port": 80}, ...]}

Either shape may also ask for a headless companion endpoint, through
headless_service_enabled (or one of its spellings) or service_type "headless".

Both normalize to NormalizedNetworkConfig. Parsing is best-effort and never
raises: unusable entries are dropped, and a config with nothing usable left is
reported as INVALID so callers can tell it apart from "no network configured".
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional

from ....schemas import DatabaseService, NormalizedNetworkConfig, NormalizedPort, PortDomain

logger = logging.getLogger(__name__)


class NetworkConfigStatus(str, Enum):
    ABSENT = "absent"          # nothing configured
    INVALID = "invalid"        # configured, but no usable port survived parsing
    CONFIGURED = "configured"


@dataclass
class NetworkParseResult:
    status: NetworkConfigStatus
    config: Optional[NormalizedNetworkConfig] = None

    @property
    def is_configured(self) -> bool:
        return self.status == NetworkConfigStatus.CONFIGURED


# Default ports per database engine
DATABASE_DEFAULT_PORTS: Dict[str, int] = {
    "mysql": 3306,
    "mariadb": 3306,
    "postgresql": 5432,
    "mongodb": 27017,
    "redis": 6379,
}
FALLBACK_DATABASE_PORT = 3306

_SERVICE_TYPES = {
    "clusterip": "ClusterIP",
    "nodeport": "NodePort",
    "loadbalancer": "LoadBalancer",
    "headless": "ClusterIP",
}

_HEADLESS_FLAGS = (
    "headless_service_enabled",
    "headlessServiceEnabled",
    "enable_headless_service",
    "enableHeadlessService",
)
_TRUTHY_STRINGS = {"true", "1", "yes", "y", "on"}


def coerce_positive_int(value: Any) -> Optional[int]:
    """Coerce numbers and numeric strings to a positive int, else None."""
    if isinstance(value, bool) or value is None:
        return None
    if isinstance(value, int):
        return value if value > 0 else None
    if isinstance(value, float):
        return int(value) if value.is_integer() and value > 0 else None
    if isinstance(value, str):
        text = value.strip()
        if not text:
            return None
        try:
            number = float(text)
        except ValueError:
            return None
        return int(number) if number.is_integer() and number > 0 else None
    return None


def _first(record: Dict[str, Any], *keys: str) -> Any:
    for key in keys:
        if record.get(key) is not None:
            return record[key]
    return None


def _normalize_service_type(raw: Dict[str, Any]) -> str:
    value = _first(raw, "service_type", "serviceType")
    if isinstance(value, str):
        return _SERVICE_TYPES.get(value.strip().lower(), "ClusterIP")
    return "ClusterIP"


def is_truthy(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return value != 0
    if isinstance(value, str):
        return value.strip().lower() in _TRUTHY_STRINGS
    return False


def _headless_requested(raw: Dict[str, Any]) -> bool:
    """Flag spellings, a nested {"headless_service": {"enabled": ...}}, or service_type "headless"."""
    if any(is_truthy(raw.get(key)) for key in _HEADLESS_FLAGS):
        return True
    nested = raw.get("headless_service")
    if isinstance(nested, dict) and is_truthy(nested.get("enabled")):
        return True
    value = _first(raw, "service_type", "serviceType")
    return isinstance(value, str) and value.strip().lower() == "headless"


def _parse_domain(value: Any) -> Optional[PortDomain]:
    if isinstance(value, str):
        host = value.strip().lower()
        return PortDomain(host=host) if host else None

    if isinstance(value, dict):
        enabled = value.get("enabled")
        if enabled is not None and not enabled:
            return None
        host_value = _first(value, "host", "hostname")
        if not isinstance(host_value, str) or not host_value.strip():
            return None
        prefix_value = value.get("prefix")
        prefix = prefix_value.strip().lower() if isinstance(prefix_value, str) and prefix_value.strip() else None
        return PortDomain(host=host_value.strip().lower(), prefix=prefix)

    return None


def parse_port(value: Any) -> Optional[NormalizedPort]:
    """Parse one port description; None when the container port is unusable."""
    if not isinstance(value, dict):
        return None

    container_port = coerce_positive_int(_first(value, "container_port", "containerPort"))
    if container_port is None:
        return None

    service_port = coerce_positive_int(_first(value, "service_port", "servicePort")) or container_port

    protocol_raw = value.get("protocol")
    protocol = "UDP" if isinstance(protocol_raw, str) and protocol_raw.strip().upper() == "UDP" else "TCP"

    node_port = coerce_positive_int(_first(value, "node_port", "nodePort"))

    return NormalizedPort(
        container_port=container_port,
        service_port=service_port,
        protocol=protocol,
        node_port=node_port,
        domain=_parse_domain(value.get("domain")),
    )


def normalize_network_config(raw: Any) -> NetworkParseResult:
    """
    Normalize a raw network configuration of unknown shape.

    A ``ports`` list marks the v2 shape; anything else is tried as a legacy
    single-port config.
    """
    if raw is None or (isinstance(raw, dict) and not raw):
        return NetworkParseResult(NetworkConfigStatus.ABSENT)

    if not isinstance(raw, dict):
        logger.debug(f"[K8S:NET] Ignoring network config of type {type(raw).__name__}")
        return NetworkParseResult(NetworkConfigStatus.INVALID)

    service_type = _normalize_service_type(raw)

    raw_ports = raw.get("ports")
    if isinstance(raw_ports, list):
        ports = [port for port in (parse_port(entry) for entry in raw_ports) if port is not None]
    else:
        legacy_port = parse_port(raw)
        ports = [legacy_port] if legacy_port else []

    if not ports:
        logger.debug("[K8S:NET] Network config has no usable port, treating as unconfigured")
        return NetworkParseResult(NetworkConfigStatus.INVALID)

    return NetworkParseResult(
        NetworkConfigStatus.CONFIGURED,
        NormalizedNetworkConfig(
            service_type=service_type,
            ports=ports,
            headless_service_enabled=_headless_requested(raw),
        ),
    )


def resolve_database_port(service: DatabaseService) -> int:
    """Explicit port if set, otherwise the engine default."""
    port = coerce_positive_int(service.port)
    if port:
        return port
    return DATABASE_DEFAULT_PORTS.get((service.database_type or "").lower(), FALLBACK_DATABASE_PORT)


def default_database_network(service: DatabaseService) -> NormalizedNetworkConfig:
    """NodePort endpoint on the database port; node port pinned to external_port when given."""
    port = resolve_database_port(service)
    return NormalizedNetworkConfig(
        service_type="NodePort",
        ports=[
            NormalizedPort(
                container_port=port,
                service_port=port,
                protocol="TCP",
                node_port=coerce_positive_int(service.external_port),
            )
        ],
    )


def effective_network_config(service) -> Optional[NormalizedNetworkConfig]:
    """
    Network configuration actually reconciled for a service.

    Databases without a usable network config still get a default endpoint.
    """
    result = normalize_network_config(service.network_config)
    if result.is_configured:
        return result.config
    if isinstance(service, DatabaseService):
        return default_database_network(service)
    return None
