"""
Unit tests for network configuration normalization.

Covers legacy vs v2 shapes, port coercion, headless flags and the
absent/invalid distinction.
"""

import pytest

from svcplane.schemas import parse_service
from svcplane.services.orchestration.kubernetes.network import (
    NetworkConfigStatus,
    coerce_positive_int,
    effective_network_config,
    is_truthy,
    normalize_network_config,
    parse_port,
)


@pytest.mark.unit
class TestNormalizeNetworkConfig:

    def test_legacy_and_v2_normalize_identically(self):
        legacy = normalize_network_config({
            "container_port": 8080,
            "service_port": 80,
            "service_type": "NodePort",
            "node_port": 30080,
        })
        v2 = normalize_network_config({
            "service_type": "NodePort",
            "ports": [{"container_port": 8080, "service_port": 80, "node_port": 30080}],
        })

        assert legacy.status == NetworkConfigStatus.CONFIGURED
        assert legacy.config == v2.config

    def test_service_port_defaults_to_container_port(self):
        result = normalize_network_config({"ports": [{"container_port": 5000}, {"containerPort": "6000"}]})

        assert [(p.container_port, p.service_port) for p in result.config.ports] == [(5000, 5000), (6000, 6000)]

    def test_invalid_service_port_falls_back(self):
        port = parse_port({"container_port": 5000, "service_port": "abc"})
        assert port.service_port == 5000

    def test_string_and_numeric_ports_coerced(self):
        port = parse_port({"container_port": "8080", "service_port": 80.0, "node_port": "30001"})

        assert port.container_port == 8080
        assert port.service_port == 80
        assert port.node_port == 30001

    def test_protocol_defaults_to_tcp(self):
        assert parse_port({"container_port": 53}).protocol == "TCP"
        assert parse_port({"container_port": 53, "protocol": "udp"}).protocol == "UDP"
        assert parse_port({"container_port": 53, "protocol": "sctp"}).protocol == "TCP"

    def test_invalid_node_port_dropped(self):
        assert parse_port({"container_port": 80, "node_port": -1}).node_port is None

    def test_entry_without_container_port_dropped(self):
        result = normalize_network_config({"ports": [{"service_port": 80}, {"container_port": 0}, {"container_port": 81}]})

        assert [p.container_port for p in result.config.ports] == [81]

    def test_all_entries_dropped_is_invalid(self):
        result = normalize_network_config({"ports": [{"container_port": "x"}]})

        assert result.status == NetworkConfigStatus.INVALID
        assert result.config is None
        assert not result.is_configured

    def test_absent(self):
        assert normalize_network_config(None).status == NetworkConfigStatus.ABSENT
        assert normalize_network_config({}).status == NetworkConfigStatus.ABSENT

    def test_non_dict_is_invalid(self):
        assert normalize_network_config("8080").status == NetworkConfigStatus.INVALID
        assert normalize_network_config([{"container_port": 80}]).status == NetworkConfigStatus.INVALID

    def test_service_type_normalized(self):
        for raw, expected in (("nodeport", "NodePort"), ("LoadBalancer", "LoadBalancer"), ("weird", "ClusterIP"), ("Headless", "ClusterIP")):
            result = normalize_network_config({"service_type": raw, "container_port": 80})
            assert result.config.service_type == expected

    def test_domain_passthrough(self):
        result = normalize_network_config({
            "ports": [
                {"container_port": 80, "domain": {"host": "API.Example.com", "prefix": "/v1"}},
                {"container_port": 81, "domain": "Admin.example.com"},
                {"container_port": 82, "domain": {"host": "off.example.com", "enabled": False}},
            ]
        })
        domains = [p.domain for p in result.config.ports]

        assert domains[0].host == "api.example.com"
        assert domains[0].prefix == "/v1"
        assert domains[1].host == "admin.example.com"
        assert domains[2] is None

    @pytest.mark.parametrize("extra", [
        {"headless_service_enabled": True},
        {"headlessServiceEnabled": "yes"},
        {"enable_headless_service": 1},
        {"enableHeadlessService": "on"},
        {"headless_service": {"enabled": "true"}},
        {"service_type": "Headless"},
    ])
    def test_headless_requested(self, extra):
        result = normalize_network_config({"container_port": 5432, **extra})

        assert result.config.headless_service_enabled is True
        assert result.config.service_type == "ClusterIP"

    def test_headless_off_by_default(self):
        for raw in (
            {"container_port": 5432},
            {"container_port": 5432, "headless_service_enabled": "no"},
            {"container_port": 5432, "headless_service": {"enabled": False}},
            {"ports": [{"container_port": 5432}], "enable_headless_service": 0},
        ):
            assert normalize_network_config(raw).config.headless_service_enabled is False

    def test_headless_flag_on_v2_shape_keeps_service_type(self):
        result = normalize_network_config({
            "service_type": "NodePort",
            "headless_service_enabled": True,
            "ports": [{"container_port": 5432, "node_port": 30432}],
        })

        assert result.config.service_type == "NodePort"
        assert result.config.headless_service_enabled is True


@pytest.mark.unit
def test_coerce_positive_int():
    assert coerce_positive_int(True) is None
    assert coerce_positive_int(" 42 ") == 42
    assert coerce_positive_int(4.5) is None
    assert coerce_positive_int("0") is None
    assert coerce_positive_int(None) is None


@pytest.mark.unit
def test_is_truthy():
    assert all(is_truthy(v) for v in (True, 1, 2.5, "true", " YES ", "y", "on", "1"))
    assert not any(is_truthy(v) for v in (False, 0, "", "no", "off", "enabled", None, [1], {"a": 1}))


@pytest.mark.unit
class TestEffectiveNetworkConfig:

    def test_database_gets_default_node_port_endpoint(self):
        service = parse_service({"type": "database", "name": "cache", "database_type": "redis", "external_port": 31379})
        network = effective_network_config(service)

        assert network.service_type == "NodePort"
        assert network.ports[0].container_port == 6379
        assert network.ports[0].node_port == 31379

    def test_database_explicit_port(self):
        service = parse_service({"type": "database", "name": "db", "database_type": "mysql", "port": 3307})
        assert effective_network_config(service).ports[0].container_port == 3307

    def test_unknown_engine_falls_back(self):
        service = parse_service({"type": "database", "name": "db", "database_type": "cockroach"})
        assert effective_network_config(service).ports[0].container_port == 3306

    def test_application_without_network(self):
        service = parse_service({"type": "application", "name": "web", "network_config": {"ports": []}})
        assert effective_network_config(service) is None
