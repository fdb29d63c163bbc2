from __future__ import annotations

import logging

from serverless_api.config.defaults import DEFAULTS, RuntimeDefaults
from serverless_api.domain.models import (
    BorrowedHandler,
    EndpointSpec,
    HandlerSource,
    OwnedHandler,
    ResolvedConfig,
)
from serverless_api.errors import ConfigError, ConfigErrorKind

logger = logging.getLogger(__name__)


def _require_layer(spec: EndpointSpec) -> str:
    layer = (spec.runtime_layer_version or "").strip()
    if not layer:
        raise ConfigError(
            ConfigErrorKind.MISSING_REQUIRED_FIELD,
            "runtime_layer_version is required (e.g. a Bref PHP-FPM layer ARN)",
            field="runtime_layer_version",
        )
    return layer


def _handler_source(spec: EndpointSpec, layer: str, defaults: RuntimeDefaults) -> HandlerSource:
    # A caller handler wins outright: code location and runtime settings are
    # never computed for it.
    if spec.handler is not None:
        return BorrowedHandler(handle=spec.handler)

    return OwnedHandler(
        name=f"{spec.name}-handler",
        runtime=defaults.runtime_settings(),
        code_location=spec.code_location or defaults.code_location,
        runtime_layer=layer,
        network=spec.network,
    )


def resolve_config(spec: EndpointSpec, defaults: RuntimeDefaults = DEFAULTS) -> ResolvedConfig:
    """
    EndpointSpec -> ResolvedConfig. Pure; raises ConfigError on invalid input.

    Order: runtime layer check, handler identity, code location, network.
    """
    layer = _require_layer(spec)
    source = _handler_source(spec, layer, defaults)

    config = ResolvedConfig(
        name=spec.name,
        handler_source=source,
        runtime_layer=layer,
        network=spec.network,
    )
    logger.debug(
        f"[resolver] Resolved {spec.name!r} | handler={source.kind} | "
        f"code={config.code_location} | network={spec.network.id if spec.network else None}"
    )
    return config
