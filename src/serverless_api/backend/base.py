from __future__ import annotations

from typing import Optional, Protocol

from serverless_api.domain.models import GatewayHandle, HandlerHandle, NetworkRef, RuntimeSettings


class ProvisioningBackend(Protocol):
    """
    Resource-creation capability consumed by the topology builder.

    Calls block until the backend answers. Failures are raised as exceptions;
    the builder wraps them into ProvisioningError. Creation is not assumed to
    be idempotent, so callers never retry.
    """

    def create_compute_handler(
        self,
        runtime: RuntimeSettings,
        code_location: str,
        runtime_layer: str,
        network: Optional[NetworkRef] = None,
        *,
        name: Optional[str] = None,
    ) -> HandlerHandle:
        ...

    def create_gateway(
        self,
        default_route_target: HandlerHandle,
        *,
        name: Optional[str] = None,
    ) -> GatewayHandle:
        """Create a gateway whose single catch-all route proxies to the target."""
        ...

    def get_address(self, gateway: GatewayHandle) -> str:
        ...
