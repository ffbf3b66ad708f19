"""TOML-based provisioner configuration.

Loads ~/.stackboot/defaults.toml (global) and stackboot.toml (project),
merges them, and builds a ProvisionerConfig from the [provisioner] table.

Example stackboot.toml:

    [provisioner]
    poll_interval = 2.0
    convergence_timeout = 600
    script_label = "my-cluster-boot"
"""

from __future__ import annotations

import tomllib
from dataclasses import dataclass, fields
from datetime import UTC, datetime
from pathlib import Path
from typing import Any, TypeAlias

from stackboot.stackscript import DEFAULT_SCRIPT_TEMPLATE, render_startup_script

__all__ = [
    "ProvisionerConfig",
    "load_config",
    "resolve_config",
]

RawConfig: TypeAlias = dict[str, Any]

GLOBAL_CONFIG_PATH = Path.home() / ".stackboot" / "defaults.toml"
PROJECT_CONFIG_NAME = "stackboot.toml"


@dataclass(frozen=True, slots=True)
class ProvisionerConfig:
    """Provisioner settings.

    Args:
        provider: Provider name used for catalog lookups. Default: linode.
        poll_interval: Seconds between status observations. Default: 5.
        convergence_timeout: Maximum seconds per status wait. Default: 300.
        script_label: Label of the account's startup script. Default: linode-demo.
        script_template: Startup script body; ``{timestamp}`` and ``{cluster}``
            are filled in at render time. Literal braces are doubled.
        early_label: Label the instance as soon as its public IP is known,
            not only after boot. Default: True.
    """

    provider: str = "linode"
    poll_interval: float = 5.0
    convergence_timeout: float = 300.0
    script_label: str = "linode-demo"
    script_template: str = DEFAULT_SCRIPT_TEMPLATE
    early_label: bool = True

    def __post_init__(self) -> None:
        if self.poll_interval <= 0:
            raise ValueError(f"poll_interval must be positive, got {self.poll_interval}")
        if self.convergence_timeout <= 0:
            raise ValueError(
                f"convergence_timeout must be positive, got {self.convergence_timeout}"
            )
        if not self.script_label:
            raise ValueError("script_label must not be empty")
        render_startup_script(self.script_template, cluster="", now=datetime.now(UTC))


def _deep_merge(base: RawConfig, override: RawConfig) -> RawConfig:
    result = dict(base)
    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = _deep_merge(result[key], value)
        else:
            result[key] = value
    return result


def _read_toml(path: Path) -> RawConfig:
    if not path.is_file():
        return {}
    with path.open("rb") as f:
        return tomllib.load(f)


def load_config(
    *,
    project_dir: Path | None = None,
    global_path: Path | None = None,
) -> RawConfig:
    global_cfg = _read_toml(global_path or GLOBAL_CONFIG_PATH)
    project_path = (project_dir or Path.cwd()) / PROJECT_CONFIG_NAME
    project_cfg = _read_toml(project_path)

    merged = _deep_merge(global_cfg, project_cfg)
    merged.setdefault("provisioner", {})
    return merged


def _build_config(raw: RawConfig) -> ProvisionerConfig:
    valid = {f.name for f in fields(ProvisionerConfig)}
    unknown = set(raw) - valid
    if unknown:
        raise ValueError(
            f"Unknown provisioner settings: {', '.join(sorted(unknown))}. "
            f"Valid: {', '.join(sorted(valid))}"
        )
    return ProvisionerConfig(**raw)


def resolve_config(
    *,
    project_dir: Path | None = None,
    global_path: Path | None = None,
) -> ProvisionerConfig:
    config = load_config(project_dir=project_dir, global_path=global_path)
    return _build_config(config["provisioner"])
