from __future__ import annotations

from enum import Enum
from typing import Optional

from serverless_api.domain.models import GatewayHandle, HandlerHandle


class ConfigErrorKind(str, Enum):
    MISSING_REQUIRED_FIELD = "missing_required_field"
    INVALID_SPEC = "invalid_spec"


class ProvisioningErrorKind(str, Enum):
    CREATION_FAILED = "creation_failed"
    INCOMPLETE_RESOURCE = "incomplete_resource"


class BuildStep(str, Enum):
    HANDLER = "handler"
    GATEWAY = "gateway"
    ADDRESS = "address"


class ConfigError(ValueError):
    """Caller input is invalid. Raised before any resource is created."""

    def __init__(self, kind: ConfigErrorKind, message: str, field: Optional[str] = None):
        super().__init__(message)
        self.kind = kind
        self.field = field


class ProvisioningError(RuntimeError):
    """
    A backend step failed.

    `allocated_handler` is set when this build created a handler before the
    failing step. Nothing is rolled back: the caller owns cleanup of that
    handler (and of `gateway`, when present).
    """

    def __init__(
        self,
        kind: ProvisioningErrorKind,
        step: BuildStep,
        message: str,
        allocated_handler: Optional[HandlerHandle] = None,
        gateway: Optional[GatewayHandle] = None,
    ):
        super().__init__(f"{step.value}: {message}")
        self.kind = kind
        self.step = step
        self.allocated_handler = allocated_handler
        self.gateway = gateway
