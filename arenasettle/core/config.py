"""
arenasettle/core/config.py

Settlement configuration.

Load order (later wins):
    1. dataclass defaults     (mirror the devnet deployment)
    2. YAML file              SettlementConfig.from_yaml(path)
    3. environment overrides  (connectivity and secrets only)

Strategy constants (rake, tie fee, tolerance) come from YAML; the
environment only carries endpoints, program ids and the authority key.
"""

import os
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

import yaml

from arenasettle.core.exceptions import ConfigError


DEFAULT_PROGRAM_ID = "Fg6PaFpoGXkYsidMpWTK6W2BeZ7FEfcYkg476zPFsLnS"
DEFAULT_USDC_MINT  = "4zMMC9srt5Ri5X14GAgXhaHii3GnPAEERYPJgZJDncDU"

_COMMITMENTS = {"processed", "confirmed", "finalized"}


@dataclass
class SettlementConfig:
    # ── Cluster ──────────────────────────────────────────────
    rpc_url:                 str = "https://api.devnet.solana.com"
    commitment:              str = "confirmed"
    rpc_timeout_seconds:     float = 30.0
    program_id:              str = DEFAULT_PROGRAM_ID
    usdc_mint:               str = DEFAULT_USDC_MINT
    authority_keypair:       Optional[str] = None

    # ── Fees ─────────────────────────────────────────────────
    min_priority_fee:        int = 1           # micro-lamports per CU
    max_priority_fee:        int = 200_000     # micro-lamports per CU

    # ── Economics ────────────────────────────────────────────
    rake_percent:            float = 0.10
    tie_fee_percent:         float = 0.02
    tie_tolerance:           float = 0.00001

    # ── Scheduling ───────────────────────────────────────────
    interval_seconds:        float = 30.0
    sweep_delay_seconds:     float = 0.5
    close_settled_games:     bool = True

    # ── Storage ──────────────────────────────────────────────
    repository_path:         str = ".arenasettle/matches.json"
    journal_path:            Optional[str] = ".arenasettle/journal.jsonl"

    extra: Dict[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        self.validate()

    def validate(self) -> None:
        if self.commitment not in _COMMITMENTS:
            raise ConfigError(
                f"Unknown commitment level: {self.commitment!r}",
                {"allowed": "/".join(sorted(_COMMITMENTS))},
            )
        if self.rpc_timeout_seconds <= 0:
            raise ConfigError("rpc_timeout_seconds must be positive")
        if self.min_priority_fee < 0 or self.max_priority_fee < self.min_priority_fee:
            raise ConfigError(
                "Priority fee bounds must satisfy 0 <= min <= max",
                {"min": self.min_priority_fee, "max": self.max_priority_fee},
            )
        if not 0 <= self.rake_percent < 1:
            raise ConfigError("rake_percent must be in [0, 1)")
        if not 0 <= self.tie_fee_percent < 1:
            raise ConfigError("tie_fee_percent must be in [0, 1)")
        if self.tie_tolerance <= 0:
            raise ConfigError("tie_tolerance must be positive")
        if self.interval_seconds <= 0:
            raise ConfigError("interval_seconds must be positive")

    # ── Construction ─────────────────────────────────────────

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "SettlementConfig":
        known = {f.name for f in fields(cls)} - {"extra"}
        kwargs = {k: v for k, v in data.items() if k in known}
        extra = {k: v for k, v in data.items() if k not in known}
        try:
            return cls(**kwargs, extra=extra)
        except TypeError as exc:
            raise ConfigError(f"Invalid configuration: {exc}") from exc

    @classmethod
    def from_yaml(
        cls,
        path: Optional[Path],
        env: Optional[Mapping[str, str]] = None,
    ) -> "SettlementConfig":
        """
        Load configuration from a YAML file, then apply environment overrides.

        A missing path yields defaults plus overrides. A path that exists
        but does not parse to a mapping raises ConfigError.
        """
        data: Dict[str, Any] = {}
        if path is not None:
            path = Path(path)
            if not path.exists():
                raise ConfigError(f"Config file not found: {path}")
            try:
                with open(path, "r", encoding="utf-8") as f:
                    loaded = yaml.safe_load(f)
            except yaml.YAMLError as exc:
                raise ConfigError(f"Invalid YAML in {path}: {exc}") from exc
            if loaded is None:
                loaded = {}
            if not isinstance(loaded, dict):
                raise ConfigError(f"Config file {path} must contain a mapping")
            data.update(loaded)

        data.update(env_overrides(os.environ if env is None else env))
        return cls.from_dict(data)


# Environment variable → config field, with a converter.
_ENV_OVERRIDES = {
    "SOLANA_RPC_URL":                 ("rpc_url", str),
    "PROGRAM_ID":                     ("program_id", str),
    "USDC_MINT":                      ("usdc_mint", str),
    "AUTHORITY_KEYPAIR":              ("authority_keypair", str),
    "ARENASETTLE_COMMITMENT":         ("commitment", str),
    "ARENASETTLE_RPC_TIMEOUT":        ("rpc_timeout_seconds", float),
    "ARENASETTLE_INTERVAL":           ("interval_seconds", float),
    "ARENASETTLE_REPOSITORY_PATH":    ("repository_path", str),
    "ARENASETTLE_JOURNAL_PATH":       ("journal_path", str),
    "ARENASETTLE_MAX_PRIORITY_FEE":   ("max_priority_fee", int),
}


def env_overrides(env: Mapping[str, str]) -> Dict[str, Any]:
    out: Dict[str, Any] = {}
    for name, (key, convert) in _ENV_OVERRIDES.items():
        raw = env.get(name)
        if raw is None or raw == "":
            continue
        try:
            out[key] = convert(raw)
        except ValueError as exc:
            raise ConfigError(f"Invalid value for {name}: {raw!r}") from exc
    return out
