from __future__ import annotations

from typing import Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field


class _Frozen(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")


class HandlerHandle(_Frozen):
    """Opaque reference to a compute handler owned by the backend (or the caller)."""

    id: str
    name: str = ""


class GatewayHandle(_Frozen):
    id: str
    handler_id: str
    name: str = ""


class NetworkRef(_Frozen):
    id: str
    subnets: tuple[str, ...] = ()


class EndpointSpec(_Frozen):
    """
    Caller input. Everything except `runtime_layer_version` may be omitted;
    that one is checked by the resolver, not here, so a missing value surfaces
    as a ConfigError instead of a pydantic error.
    """

    name: str = "api"
    handler: Optional[HandlerHandle] = None
    code_location: Optional[str] = None
    runtime_layer_version: Optional[str] = None
    network: Optional[NetworkRef] = None


class RuntimeSettings(_Frozen):
    runtime: str
    entry_point: str
    environment: dict[str, str] = Field(default_factory=dict)
    timeout_seconds: int

    @property
    def storage_mount(self) -> Optional[str]:
        return self.environment.get("APP_STORAGE")


class OwnedHandler(_Frozen):
    """Handler to be created by the topology (and destroyed with it)."""

    kind: Literal["owned"] = "owned"
    name: str
    runtime: RuntimeSettings
    code_location: str
    runtime_layer: str
    network: Optional[NetworkRef] = None


class BorrowedHandler(_Frozen):
    """Caller-supplied handler. The topology routes to it but never owns it."""

    kind: Literal["borrowed"] = "borrowed"
    handle: HandlerHandle


HandlerSource = Union[OwnedHandler, BorrowedHandler]


class ResolvedConfig(_Frozen):
    name: str
    handler_source: HandlerSource = Field(discriminator="kind")
    runtime_layer: str
    network: Optional[NetworkRef] = None

    @property
    def is_borrowed(self) -> bool:
        return isinstance(self.handler_source, BorrowedHandler)

    @property
    def code_location(self) -> Optional[str]:
        if isinstance(self.handler_source, OwnedHandler):
            return self.handler_source.code_location
        return None

    @property
    def runtime(self) -> Optional[RuntimeSettings]:
        if isinstance(self.handler_source, OwnedHandler):
            return self.handler_source.runtime
        return None


class PublishedEndpoint(_Frozen):
    address: str = Field(min_length=1)
    output_key: str = "EndpointURL"
