import pytest

from dns_failover.core.config import load_domains, load_settings, parse_domains
from dns_failover.core.errors import ConfigurationError

VALID = """
defaults:
  fail_threshold: 2
  probe_interval_s: 10
domains:
  - domain_name: app.example.com
    hosted_zone_id: /hostedzone/Z123
    recover_threshold: 7
    targets:
      - {region_id: eu, health_check_url: "https://eu.example.com/healthz", dns_value: eu.lb, priority: primary}
      - {region_id: us, health_check_url: "https://us.example.com/healthz", dns_value: us.lb, priority: secondary}
  - domain_name: api.example.com
    targets:
      - {region_id: eu, health_check_url: "https://eu.example.com/healthz", dns_value: eu.lb, priority: 10}
"""


def _domain(**overrides):
    d = {
        "domain_name": "app.example.com",
        "targets": [
            {"region_id": "eu", "health_check_url": "https://eu/healthz", "dns_value": "eu.lb", "priority": "primary"},
            {"region_id": "us", "health_check_url": "https://us/healthz", "dns_value": "us.lb", "priority": "secondary"},
        ],
    }
    d.update(overrides)
    return d


def test_load_domains_applies_defaults_and_overrides(tmp_path):
    path = tmp_path / "failover.yaml"
    path.write_text(VALID)
    app, api = load_domains(str(path))

    assert app.fail_threshold == 2
    assert app.recover_threshold == 7
    assert app.probe_interval_s == 10
    assert app.probe_timeout_s == 5.0
    assert app.record_type == "CNAME"
    assert app.success_statuses == [200]
    assert app.target("eu").priority > app.target("us").priority
    assert api.recover_threshold == 5
    assert api.target("eu").priority == 10


def test_defaults_when_unspecified():
    (d,) = parse_domains({"domains": [_domain()]})
    assert (d.fail_threshold, d.recover_threshold, d.probe_interval_s, d.ttl) == (3, 5, 30.0, 60)


@pytest.mark.parametrize(
    "overrides",
    [
        {"targets": []},
        {"targets": [
            {"region_id": "eu", "health_check_url": "https://a/h", "dns_value": "a", "priority": 1},
            {"region_id": "eu", "health_check_url": "https://b/h", "dns_value": "b", "priority": 2},
        ]},
        {"targets": [
            {"region_id": "eu", "health_check_url": "https://a/h", "dns_value": "a", "priority": 1},
            {"region_id": "us", "health_check_url": "https://b/h", "dns_value": "b", "priority": 1},
        ]},
        {"fail_threshold": 0},
        {"recover_threshold": 0},
        {"probe_interval_s": 0},
        {"probe_timeout_s": -1},
        {"success_statuses": []},
    ],
)
def test_invalid_domain_is_configuration_error(overrides):
    with pytest.raises(ConfigurationError):
        parse_domains({"domains": [_domain(**overrides)]})


def test_duplicate_domain_names_rejected():
    with pytest.raises(ConfigurationError):
        parse_domains({"domains": [_domain(), _domain()]})


def test_no_domains_rejected():
    with pytest.raises(ConfigurationError):
        parse_domains({"domains": []})


def test_missing_file(tmp_path):
    with pytest.raises(ConfigurationError):
        load_domains(str(tmp_path / "nope.yaml"))


def test_invalid_yaml(tmp_path):
    path = tmp_path / "bad.yaml"
    path.write_text("domains: [unclosed")
    with pytest.raises(ConfigurationError):
        load_domains(str(path))


def test_empty_file(tmp_path):
    path = tmp_path / "empty.yaml"
    path.write_text("")
    with pytest.raises(ConfigurationError):
        load_domains(str(path))


def test_load_settings_from_env(monkeypatch):
    monkeypatch.setenv("FAILOVER_CONFIG_FILE", "/etc/failover.yaml")
    monkeypatch.setenv("DNS_PROVIDER", "MEMORY")
    monkeypatch.setenv("HISTORY_LIMIT", "5")
    s = load_settings()
    assert s.config_file == "/etc/failover.yaml"
    assert s.dns_provider == "memory"
    assert s.history_limit == 5


def test_load_settings_rejects_unknown_provider(monkeypatch):
    monkeypatch.setenv("DNS_PROVIDER", "bind")
    with pytest.raises(ConfigurationError):
        load_settings()


def _alias_target(region, priority, **extra):
    t = {
        "region_id": region,
        "health_check_url": f"https://{region}/healthz",
        "dns_value": f"k8s-ingress-{region}.elb.amazonaws.com",
        "priority": priority,
    }
    t.update(extra)
    return t


def test_alias_targets_accepted_for_a_records():
    (d,) = parse_domains({"domains": [_domain(
        record_type="A",
        set_identifier="failover-reconciler",
        targets=[
            _alias_target("eu", "primary", alias_hosted_zone_id="Z32O12XQLNTSW2"),
            _alias_target("us", "secondary", alias_hosted_zone_id="Z35SXDOTRQ7X7K"),
        ],
    )]})
    assert d.target("eu").alias_hosted_zone_id == "Z32O12XQLNTSW2"
    assert d.set_identifier == "failover-reconciler"
    assert d.weight == 100


def test_a_record_with_ip_targets_needs_no_alias():
    (d,) = parse_domains({"domains": [_domain(
        record_type="A",
        targets=[
            {"region_id": "eu", "health_check_url": "https://eu/h", "dns_value": "203.0.113.10", "priority": 2},
            {"region_id": "us", "health_check_url": "https://us/h", "dns_value": "198.51.100.7", "priority": 1},
        ],
    )]})
    assert d.record_type == "A"


@pytest.mark.parametrize(
    "overrides",
    [
        # hostname in an A record without an alias zone
        {"record_type": "A", "targets": [_alias_target("eu", "primary")]},
        # alias on a CNAME
        {"targets": [_alias_target("eu", "primary", alias_hosted_zone_id="Z32O12XQLNTSW2")]},
    ],
)
def test_inconsistent_alias_settings_rejected(overrides):
    with pytest.raises(ConfigurationError):
        parse_domains({"domains": [_domain(**overrides)]})
