import pytest

from serverless_api.config.defaults import DEFAULT_CODE_LOCATION, DEFAULTS, RuntimeDefaults
from serverless_api.config.resolver import resolve_config
from serverless_api.domain.models import (
    BorrowedHandler,
    EndpointSpec,
    HandlerHandle,
    NetworkRef,
    OwnedHandler,
)
from serverless_api.errors import ConfigError, ConfigErrorKind


LAYER = "arn:aws:lambda:us-west-1:209497400698:layer:php-74-fpm:12"


@pytest.mark.parametrize("layer", [None, "", "   "])
def test_missing_runtime_layer_is_a_config_error(layer):
    with pytest.raises(ConfigError) as excinfo:
        resolve_config(EndpointSpec(runtime_layer_version=layer))

    assert excinfo.value.kind is ConfigErrorKind.MISSING_REQUIRED_FIELD
    assert excinfo.value.field == "runtime_layer_version"


def test_defaults_applied_when_nothing_supplied():
    cfg = resolve_config(EndpointSpec(runtime_layer_version=LAYER))

    assert isinstance(cfg.handler_source, OwnedHandler)
    assert cfg.code_location == DEFAULT_CODE_LOCATION
    assert cfg.runtime_layer == LAYER
    assert cfg.network is None

    rt = cfg.runtime
    assert rt.runtime == "provided"
    assert rt.entry_point == "public/index.php"
    assert rt.storage_mount == "/tmp"
    assert rt.timeout_seconds == 120


def test_default_code_location_is_deterministic():
    spec = EndpointSpec(runtime_layer_version=LAYER)
    locations = {resolve_config(spec).code_location for _ in range(5)}
    assert locations == {DEFAULTS.code_location}


def test_caller_code_location_wins_over_default():
    cfg = resolve_config(EndpointSpec(runtime_layer_version=LAYER, code_location="./build/app"))
    assert cfg.code_location == "./build/app"


def test_caller_handler_skips_code_location_and_runtime():
    handle = HandlerHandle(id="fn-existing")
    cfg = resolve_config(
        EndpointSpec(runtime_layer_version=LAYER, handler=handle, code_location="./ignored")
    )

    assert cfg.is_borrowed
    assert isinstance(cfg.handler_source, BorrowedHandler)
    assert cfg.handler_source.handle == handle
    assert cfg.code_location is None
    assert cfg.runtime is None


def test_network_passes_through_unchanged():
    net = NetworkRef(id="vpc-123", subnets=("subnet-a", "subnet-b"))
    cfg = resolve_config(EndpointSpec(runtime_layer_version=LAYER, network=net))

    assert cfg.network == net
    assert cfg.handler_source.network == net


def test_handler_name_derived_from_topology_name():
    cfg = resolve_config(EndpointSpec(name="shop", runtime_layer_version=LAYER))
    assert cfg.handler_source.name == "shop-handler"


def test_custom_defaults_record():
    defaults = RuntimeDefaults(code_location="/opt/app", timeout_seconds=30, storage_mount="/mnt/work")
    cfg = resolve_config(EndpointSpec(runtime_layer_version=LAYER), defaults)

    assert cfg.code_location == "/opt/app"
    assert cfg.runtime.timeout_seconds == 30
    assert cfg.runtime.environment == {"APP_STORAGE": "/mnt/work"}


def test_resolver_does_not_mutate_spec():
    spec = EndpointSpec(runtime_layer_version=LAYER)
    resolve_config(spec)
    assert spec.code_location is None
    assert spec.handler is None


def test_default_code_location_is_passed_through_unchecked(tmp_path):
    assert DEFAULT_CODE_LOCATION.replace("\\", "/").endswith("serverless_api/bundle/laravel58-bref")

    missing = str(tmp_path / "not-built-yet")
    cfg = resolve_config(EndpointSpec(runtime_layer_version=LAYER), RuntimeDefaults(code_location=missing))
    assert cfg.code_location == missing
