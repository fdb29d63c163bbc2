from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Optional

from serverless_api.domain.models import GatewayHandle, HandlerHandle, NetworkRef, RuntimeSettings

logger = logging.getLogger(__name__)

DEFAULT_ADDRESS_TEMPLATE = "https://{gateway_id}.execute-api.localhost/"


@dataclass(frozen=True)
class BackendCall:
    op: str  # create_compute_handler | create_gateway | get_address
    args: dict[str, Any]


@dataclass
class InMemoryBackend:
    """
    Process-local backend: nothing is provisioned, every call is recorded.

    Used for dry runs and as a test double. Each instance is independent.
    """

    address_template: str = DEFAULT_ADDRESS_TEMPLATE
    calls: list[BackendCall] = field(default_factory=list)
    handlers: dict[str, HandlerHandle] = field(default_factory=dict)
    gateways: dict[str, GatewayHandle] = field(default_factory=dict)

    def create_compute_handler(
        self,
        runtime: RuntimeSettings,
        code_location: str,
        runtime_layer: str,
        network: Optional[NetworkRef] = None,
        *,
        name: Optional[str] = None,
    ) -> HandlerHandle:
        self.calls.append(
            BackendCall(
                "create_compute_handler",
                {
                    "runtime": runtime,
                    "code_location": code_location,
                    "runtime_layer": runtime_layer,
                    "network": network,
                    "name": name,
                },
            )
        )
        handle = HandlerHandle(id=f"handler-{len(self.handlers) + 1}", name=name or "")
        self.handlers[handle.id] = handle
        logger.debug(f"[memory] Created handler {handle.id}")
        return handle

    def create_gateway(
        self,
        default_route_target: HandlerHandle,
        *,
        name: Optional[str] = None,
    ) -> GatewayHandle:
        self.calls.append(
            BackendCall("create_gateway", {"default_route_target": default_route_target, "name": name})
        )
        handle = GatewayHandle(
            id=f"gateway-{len(self.gateways) + 1}",
            handler_id=default_route_target.id,
            name=name or "",
        )
        self.gateways[handle.id] = handle
        logger.debug(f"[memory] Created gateway {handle.id} -> {default_route_target.id}")
        return handle

    def get_address(self, gateway: GatewayHandle) -> str:
        self.calls.append(BackendCall("get_address", {"gateway": gateway}))
        if gateway.id not in self.gateways:
            raise KeyError(f"unknown gateway: {gateway.id}")
        return self.address_template.format(gateway_id=gateway.id)

    def ops(self) -> list[str]:
        return [c.op for c in self.calls]
