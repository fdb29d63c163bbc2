from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from pydantic import ValidationError

from serverless_api.backend.memory import DEFAULT_ADDRESS_TEMPLATE, InMemoryBackend
from serverless_api.backend.sqlite_state import SQLiteStateBackend
from serverless_api.domain.models import EndpointSpec
from serverless_api.errors import ConfigError, ConfigErrorKind
from serverless_api.topology.builder import build_topology
from serverless_api.topology.model import Topology

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SynthResult:
    topology: Topology
    db_path: Optional[str]  # None on dry runs
    mode: str  # "state" | "dry-run"


def load_spec(spec_path: Path) -> EndpointSpec:
    """Read a JSON EndpointSpec. Unreadable or malformed files raise ConfigError."""
    try:
        raw = json.loads(spec_path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as exc:
        raise ConfigError(ConfigErrorKind.INVALID_SPEC, f"cannot read spec {spec_path}: {exc}") from exc

    try:
        return EndpointSpec.model_validate(raw)
    except ValidationError as exc:
        raise ConfigError(ConfigErrorKind.INVALID_SPEC, f"invalid spec {spec_path}: {exc}") from exc


def run_synth(
    spec_path: Path,
    state_dir: Path,
    dry_run: bool = False,
    address_template: str = DEFAULT_ADDRESS_TEMPLATE,
) -> SynthResult:
    spec = load_spec(spec_path)

    if dry_run:
        logger.info(f"[synth] Dry run for {spec_path}")
        topology = build_topology(spec, InMemoryBackend(address_template=address_template))
        return SynthResult(topology=topology, db_path=None, mode="dry-run")

    db_path = SQLiteStateBackend.db_path_for_dir(state_dir.resolve())
    backend = SQLiteStateBackend(db_path, address_template=address_template)
    logger.info(f"[synth] Building {spec_path} against {db_path}")
    topology = build_topology(spec, backend)
    return SynthResult(topology=topology, db_path=str(db_path), mode="state")
