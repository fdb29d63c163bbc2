"""
Topology builder.

Turns a ResolvedConfig into live resources through an injected
ProvisioningBackend:

    1. handler   borrowed as-is, or created from the owned handler config
    2. gateway   created with one catch-all route to the handler
    3. address   read from the gateway; must be non-empty
    4. publish   exposed as the single "EndpointURL" output

Each step needs the previous one. There is no rollback: if step 2 or 3 fails
after a handler was created, that handler stays allocated and is reported on
the ProvisioningError for the caller to clean up.
"""

from __future__ import annotations

import logging
from typing import Optional

from serverless_api.backend.base import ProvisioningBackend
from serverless_api.config.defaults import DEFAULTS, RuntimeDefaults
from serverless_api.config.resolver import resolve_config
from serverless_api.domain.models import (
    BorrowedHandler,
    EndpointSpec,
    GatewayHandle,
    HandlerHandle,
    PublishedEndpoint,
    ResolvedConfig,
)
from serverless_api.errors import BuildStep, ProvisioningError, ProvisioningErrorKind
from serverless_api.topology.model import BuildState, Topology

logger = logging.getLogger(__name__)


class TopologyBuilder:
    """
    Single-use builder: one instance, one topology.

    State moves INIT -> HANDLER_READY -> GATEWAY_READY -> PUBLISHED, or to
    FAILED from any of these. Both end states are terminal.
    """

    def __init__(self, backend: ProvisioningBackend):
        self._backend = backend
        self.state = BuildState.INIT
        self.allocated_handler: Optional[HandlerHandle] = None

    def build(self, config: ResolvedConfig) -> Topology:
        if self.state is not BuildState.INIT:
            raise RuntimeError(f"topology builder already used (state={self.state.value})")

        try:
            handler = self._resolve_handler(config)
            self.state = BuildState.HANDLER_READY

            gateway = self._create_gateway(config, handler)
            self.state = BuildState.GATEWAY_READY

            address = self._read_address(gateway)
        except ProvisioningError:
            self.state = BuildState.FAILED
            raise

        endpoint = PublishedEndpoint(address=address)
        self.state = BuildState.PUBLISHED
        logger.info(f"[builder] Published {config.name!r} | {endpoint.output_key}={endpoint.address}")

        return Topology(
            name=config.name,
            handler=handler,
            handler_owned=not config.is_borrowed,
            gateway=gateway,
            endpoint=endpoint,
            network=config.network,
        )

    # ----------------------------
    # steps
    # ----------------------------

    def _resolve_handler(self, config: ResolvedConfig) -> HandlerHandle:
        source = config.handler_source
        if isinstance(source, BorrowedHandler):
            logger.info(f"[builder] Using caller handler {source.handle.id}")
            return source.handle

        logger.info(
            f"[builder] Creating handler {source.name!r} | code={source.code_location} | "
            f"layer={source.runtime_layer}"
        )
        try:
            handle = self._backend.create_compute_handler(
                source.runtime,
                source.code_location,
                source.runtime_layer,
                source.network,
                name=source.name,
            )
        except Exception as exc:
            raise ProvisioningError(
                ProvisioningErrorKind.CREATION_FAILED,
                BuildStep.HANDLER,
                f"handler creation failed: {exc}",
            ) from exc

        self.allocated_handler = handle
        return handle

    def _create_gateway(self, config: ResolvedConfig, handler: HandlerHandle) -> GatewayHandle:
        logger.info(f"[builder] Creating gateway -> {handler.id}")
        try:
            return self._backend.create_gateway(handler, name=f"{config.name}-gateway")
        except Exception as exc:
            if self.allocated_handler is not None:
                logger.error(
                    f"[builder] Gateway creation failed; handler {self.allocated_handler.id} left allocated"
                )
            raise ProvisioningError(
                ProvisioningErrorKind.CREATION_FAILED,
                BuildStep.GATEWAY,
                f"gateway creation failed: {exc}",
                allocated_handler=self.allocated_handler,
            ) from exc

    def _read_address(self, gateway: GatewayHandle) -> str:
        try:
            address = self._backend.get_address(gateway)
        except Exception as exc:
            raise ProvisioningError(
                ProvisioningErrorKind.CREATION_FAILED,
                BuildStep.ADDRESS,
                f"could not read gateway address: {exc}",
                allocated_handler=self.allocated_handler,
                gateway=gateway,
            ) from exc

        if not isinstance(address, str) or not address.strip():
            raise ProvisioningError(
                ProvisioningErrorKind.INCOMPLETE_RESOURCE,
                BuildStep.ADDRESS,
                f"gateway {gateway.id} has no address (got {address!r})",
                allocated_handler=self.allocated_handler,
                gateway=gateway,
            )
        return address.strip()


def build_topology(
    spec: EndpointSpec,
    backend: ProvisioningBackend,
    defaults: RuntimeDefaults = DEFAULTS,
) -> Topology:
    """Resolve then build. ConfigError is raised before any backend call."""
    config = resolve_config(spec, defaults)
    return TopologyBuilder(backend).build(config)


def build_endpoint(
    spec: EndpointSpec,
    backend: ProvisioningBackend,
    defaults: RuntimeDefaults = DEFAULTS,
) -> PublishedEndpoint:
    return build_topology(spec, backend, defaults).endpoint
