"""Tests for telemetry setup helpers."""

from snaplink.core.telemetry import get_meter, parse_resource_attributes, setup_telemetry


def test_parse_resource_attributes():
    parsed = parse_resource_attributes("service.namespace=snaplink, team = links,broken,=orphan")

    assert parsed == {"service.namespace": "snaplink", "team": "links"}
    assert parse_resource_attributes("") == {}


def test_disabled_telemetry_installs_nothing():
    providers = setup_telemetry("tests")

    assert providers.tracer_provider is None
    assert providers.meter_provider is None


def test_meters_usable_without_setup():
    counter = get_meter("snaplink.tests").create_counter("snaplink.tests.counter")

    counter.add(1, {"cache": "hit"})
