"""Input/output helpers for JSON inputs and tabular histogram export."""

from __future__ import annotations

import dataclasses
import json
from pathlib import Path
from typing import Any

from .histograms import HistogramRegistry
from .models import (
    BinningSpec,
    ClosePairConfig,
    Collision,
    EventSelection,
    HistogramConfig,
    McParticle,
    MixingConfig,
    Particle,
    ParticleSelection,
    ProcessSwitches,
    RadiiMode,
    TripletTaskConfig,
)
from .pid import pdg_code_from_name

_SECTIONS: dict[str, type] = {
    "selection": ParticleSelection,
    "events": EventSelection,
    "close_pair": ClosePairConfig,
    "mixing": MixingConfig,
    "histograms": HistogramConfig,
    "process": ProcessSwitches,
}

_TABLE_SUFFIXES = (".parquet", ".csv", ".pkl", ".pickle")


def load_config_json(path: str | Path) -> TripletTaskConfig:
    """Load a run configuration JSON into a validated `TripletTaskConfig`.

    Expected shape (every key optional):
    {
      "pdg_code": 2212 | "proton",
      "is_mc": false,
      "selection": {...}, "events": {...}, "close_pair": {...},
      "mixing": {...}, "histograms": {...}, "process": {...}
    }
    """
    return config_from_dict(_load_json(path))


def config_from_dict(data: dict[str, Any]) -> TripletTaskConfig:
    """Build a `TripletTaskConfig` from a plain dictionary."""
    unknown = set(data) - set(_SECTIONS) - {"pdg_code", "is_mc"}
    if unknown:
        raise ValueError(f"Unknown configuration keys: {', '.join(sorted(unknown))}")
    kwargs: dict[str, Any] = {}
    if "pdg_code" in data:
        raw_pdg = data["pdg_code"]
        kwargs["pdg_code"] = pdg_code_from_name(raw_pdg) if isinstance(raw_pdg, str) else int(raw_pdg)
    if "is_mc" in data:
        kwargs["is_mc"] = bool(data["is_mc"])
    for key, cls in _SECTIONS.items():
        if key in data:
            section = data[key]
            if not isinstance(section, dict):
                raise ValueError(f"Configuration section '{key}' must be an object.")
            kwargs[key] = _parse_section(cls, section, key)
    config = TripletTaskConfig(**kwargs)
    config.validate()
    return config


def _parse_section(cls: type, section: dict[str, Any], name: str):
    """Parse one configuration section into its dataclass, coercing typed fields."""
    fields = {f.name: f for f in dataclasses.fields(cls)}
    unknown = set(section) - set(fields)
    if unknown:
        raise ValueError(f"Unknown keys in section '{name}': {', '.join(sorted(unknown))}")
    values: dict[str, Any] = {}
    for key, raw in section.items():
        default = getattr(cls(), key)
        if isinstance(default, BinningSpec):
            values[key] = BinningSpec.from_value(raw)
        elif isinstance(default, RadiiMode):
            values[key] = RadiiMode(int(raw))
        elif isinstance(default, tuple):
            if not isinstance(raw, list):
                raise ValueError(f"Configuration field '{name}.{key}' must be a list.")
            values[key] = tuple(float(x) for x in raw)
        elif isinstance(default, bool):
            values[key] = bool(raw)
        elif isinstance(default, int):
            values[key] = int(raw)
        elif isinstance(default, float):
            values[key] = float(raw)
        else:
            values[key] = raw
    return cls(**values)


def load_events_json(path: str | Path) -> tuple[list[Collision], list[Particle]]:
    """Load collisions and particles from one JSON document.

    Expected shape:
    {
      "collisions": [{"collision_id": 0, "pos_z": ..., "mult_ntr": ..., ...}, ...],
      "particles": [{"collision_id": 0, "index": 0, "pt": ..., "mc": {...}}, ...]
    }
    """
    data = _load_json(path)
    collisions_data = data.get("collisions")
    particles_data = data.get("particles")
    if not isinstance(collisions_data, list):
        raise ValueError("Events JSON must contain a list under key 'collisions'.")
    if not isinstance(particles_data, list):
        raise ValueError("Events JSON must contain a list under key 'particles'.")
    collisions = [
        _parse_collision_item(item, idx, context=f"{path}") for idx, item in enumerate(collisions_data)
    ]
    particles = [
        _parse_particle_item(item, idx, context=f"{path}") for idx, item in enumerate(particles_data)
    ]
    return collisions, particles


def load_collisions_table(path: str | Path) -> list[Collision]:
    """Load a collision table (parquet/csv/pickle) into `Collision` records."""
    df = _read_table(path)
    return [
        _parse_collision_item(row, idx, context=f"{path}")
        for idx, row in enumerate(df.to_dict(orient="records"))
    ]


def load_particles_table(path: str | Path) -> list[Particle]:
    """Load a particle table (parquet/csv/pickle) into `Particle` records.

    Truth information is read from optional `mc_pt`, `mc_eta`, `mc_phi`,
    `mc_pdg_code` columns; rows with a missing truth pT have no MC link.
    """
    df = _read_table(path)
    out: list[Particle] = []
    for idx, row in enumerate(df.to_dict(orient="records")):
        item = {k: v for k, v in row.items() if not k.startswith("mc_")}
        mc_pt = row.get("mc_pt")
        if mc_pt is not None and mc_pt == mc_pt:
            item["mc"] = {
                "pt": mc_pt,
                "eta": row["mc_eta"],
                "phi": row["mc_phi"],
                "pdg_code": row["mc_pdg_code"],
            }
        out.append(_parse_particle_item(item, idx, context=f"{path}"))
    return out


def write_histograms_table(path: str | Path, registry: HistogramRegistry) -> None:
    """Write the non-empty bins of every filled histogram into Parquet/CSV/Pickle."""
    pd = _require_pandas()
    df = pd.DataFrame(registry.to_rows())
    out = Path(path)
    suffix = out.suffix.lower()
    if suffix == ".parquet":
        df.to_parquet(out, index=False)
    elif suffix in (".pkl", ".pickle"):
        df.to_pickle(out)
    elif suffix == ".csv":
        df.to_csv(out, index=False)
    else:
        raise ValueError(
            f"Unsupported output format '{suffix}'. Use .parquet, .csv, or .pkl"
        )


def _read_table(path: str | Path):
    pd = _require_pandas()
    p = Path(path)
    suffix = p.suffix.lower()
    if suffix == ".parquet":
        return pd.read_parquet(p)
    if suffix == ".csv":
        return pd.read_csv(p)
    if suffix in (".pkl", ".pickle"):
        return pd.read_pickle(p)
    raise ValueError(f"Unsupported table format '{suffix}'. Use one of: {', '.join(_TABLE_SUFFIXES)}")


def _require_pandas():
    """Import pandas lazily and provide a clear installation hint on failure."""
    try:
        import pandas as pd  # type: ignore
    except ModuleNotFoundError as exc:
        raise ModuleNotFoundError(
            "pandas is required to read or write tables. Install pandas and pyarrow."
        ) from exc
    return pd


def _parse_collision_item(item: Any, idx: int, context: str) -> Collision:
    """Parse one collision dictionary into a `Collision`."""
    if not isinstance(item, dict):
        raise ValueError(f"Collision entry at index {idx} in {context} must be an object.")
    try:
        return Collision(
            collision_id=int(item["collision_id"]),
            pos_z=float(item["pos_z"]),
            mult_ntr=int(item["mult_ntr"]),
            mult_v0m=float(item.get("mult_v0m", 0.0)),
            mag_field=float(item["mag_field"]),
            sphericity=float(item.get("sphericity", 1.0)),
            bitmask_track_one=int(item.get("bitmask_track_one", 0)),
            bitmask_track_two=int(item.get("bitmask_track_two", 0)),
            bitmask_track_three=int(item.get("bitmask_track_three", 0)),
        )
    except KeyError as exc:
        raise ValueError(f"Collision at index {idx} in {context} is missing field {exc}.") from exc


def _parse_particle_item(item: Any, idx: int, context: str) -> Particle:
    """Parse one particle dictionary into a `Particle`."""
    if not isinstance(item, dict):
        raise ValueError(f"Particle entry at index {idx} in {context} must be an object.")
    mc_raw = item.get("mc")
    mc: McParticle | None = None
    if mc_raw is not None:
        if not isinstance(mc_raw, dict):
            raise ValueError(f"Particle field 'mc' at index {idx} in {context} must be an object.")
        mc = McParticle(
            pt=float(mc_raw["pt"]),
            eta=float(mc_raw["eta"]),
            phi=float(mc_raw["phi"]),
            pdg_code=int(mc_raw["pdg_code"]),
        )
    try:
        return Particle(
            collision_id=int(item["collision_id"]),
            index=int(item.get("index", idx)),
            pt=float(item["pt"]),
            eta=float(item["eta"]),
            phi=float(item["phi"]),
            temp_fit_var=float(item.get("temp_fit_var", 0.0)),
            part_type=int(item.get("part_type", 0)),
            cut=int(item.get("cut", 0)),
            pid_cut=int(item.get("pid_cut", 0)),
            charge=int(item.get("charge", 1)),
            mc=mc,
        )
    except KeyError as exc:
        raise ValueError(f"Particle at index {idx} in {context} is missing field {exc}.") from exc


def _load_json(path: str | Path) -> dict[str, Any]:
    """Read and validate a JSON object document from disk."""
    raw = Path(path).read_text(encoding="utf-8")
    data = json.loads(raw)
    if not isinstance(data, dict):
        raise ValueError(f"JSON document at {path} must be an object.")
    return data
