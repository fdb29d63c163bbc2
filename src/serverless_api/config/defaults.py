from __future__ import annotations

from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field

from serverless_api.domain.models import RuntimeSettings

# Where the bundled Laravel + Bref application is placed next to the package
# by the release tooling. The path is only passed through to the backend:
# nothing here reads it or checks that it exists.
DEFAULT_CODE_LOCATION = str(Path(__file__).resolve().parents[1] / "bundle" / "laravel58-bref")


class RuntimeDefaults(BaseModel):
    """
    Known-good baseline for handlers created by a topology.

    None of these come from caller input. A different record can be passed to
    the resolver, which is how tests exercise defaulting in isolation.
    """

    model_config = ConfigDict(frozen=True)

    code_location: str = DEFAULT_CODE_LOCATION
    runtime: str = "provided"
    entry_point: str = "public/index.php"
    storage_mount: str = "/tmp"
    timeout_seconds: int = Field(default=120, gt=0)

    def runtime_settings(self) -> RuntimeSettings:
        return RuntimeSettings(
            runtime=self.runtime,
            entry_point=self.entry_point,
            environment={"APP_STORAGE": self.storage_mount},
            timeout_seconds=self.timeout_seconds,
        )


DEFAULTS = RuntimeDefaults()
