from __future__ import annotations

import dataclasses
import json
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Mapping, TypeVar

from dotenv import load_dotenv

from distribution_core.burnout import DEFAULT_BURNOUT_CONFIG, BurnoutConfig
from distribution_core.delegation import DEFAULT_POLICY, DelegationPolicy
from distribution_core.fairness import ScoringWeights
from distribution_core.predictor import DEFAULT_CONFIG, PredictorConfig

T = TypeVar("T")


@dataclass(frozen=True)
class RuntimeConfig:
    artifact_root: Path
    default_profile: str
    log_level: str


@dataclass(frozen=True)
class Tuning:
    name: str
    weights: ScoringWeights
    burnout: BurnoutConfig
    predictor: PredictorConfig
    delegation: DelegationPolicy


def load_env(dotenv_path: str | Path | None = None) -> None:
    path = Path(dotenv_path) if dotenv_path else None
    if path and path.exists():
        load_dotenv(path)
        return
    load_dotenv()


def runtime_config() -> RuntimeConfig:
    artifact_root = Path(os.getenv("CHORE_BALANCE_ARTIFACT_DIR", "./artifacts")).expanduser().resolve()
    default_profile = os.getenv("CHORE_BALANCE_DEFAULT_PROFILE", "default").strip() or "default"
    log_level = os.getenv("CHORE_BALANCE_LOG_LEVEL", "INFO").strip().upper() or "INFO"
    artifact_root.mkdir(parents=True, exist_ok=True)
    return RuntimeConfig(artifact_root=artifact_root, default_profile=default_profile, log_level=log_level)


def load_tuning_profiles(profile_file: Path | None = None) -> dict[str, Any]:
    if profile_file is None:
        profile_file = Path(__file__).resolve().parent.parent / "config" / "tuning_profiles.json"
    if not profile_file.exists():
        return {}
    with profile_file.open("r", encoding="utf-8") as fh:
        return json.load(fh)


def _overlay(base: T, overrides: Mapping[str, Any] | None, section: str) -> T:
    if not overrides:
        return base
    known = {f.name for f in dataclasses.fields(base)}
    unknown = set(overrides) - known
    if unknown:
        raise ValueError(f"Unknown {section} settings: {sorted(unknown)}")
    values = {k: tuple(v) if isinstance(v, list) else v for k, v in overrides.items()}
    return dataclasses.replace(base, **values)


def build_tuning(profile: Mapping[str, Any], name: str = "custom") -> Tuning:
    """Turn one profile entry from tuning_profiles.json into engine configs.

    Missing sections keep the engine defaults. Weights, when given, must be
    complete since they have to sum to 1.
    """
    return Tuning(
        name=name,
        weights=ScoringWeights.from_mapping(profile.get("weights")),
        burnout=_overlay(DEFAULT_BURNOUT_CONFIG, profile.get("burnout"), "burnout"),
        predictor=_overlay(DEFAULT_CONFIG, profile.get("predictor"), "predictor"),
        delegation=_overlay(DEFAULT_POLICY, profile.get("delegation"), "delegation"),
    )


def get_tuning(profile_name: str, profile_file: Path | None = None) -> Tuning:
    profiles = load_tuning_profiles(profile_file)
    if profile_name not in profiles:
        if profile_name == "default":
            return build_tuning({}, "default")
        available = list(profiles.keys())
        raise ValueError(f"Profile '{profile_name}' not found. Available: {available}")
    return build_tuning(profiles[profile_name], profile_name)
