"""Input/output helpers for event inputs, configuration and table export."""

from __future__ import annotations

import json
import logging
import math
from collections import defaultdict
from pathlib import Path
from typing import Any, Callable, Sequence

from .histograms import HistogramAccumulator
from .models import (
    AnalysisConfig,
    CollisionRecord,
    EventInput,
    MASS_K0S,
    PairCandidate,
    TrackRecord,
    V0Record,
)
from .physics import rapidity_from_pt_eta

logger = logging.getLogger(__name__)

_TABLE_SUFFIXES = (".parquet", ".csv", ".pkl", ".pickle")


def load_events_json(path: str | Path) -> list[EventInput]:
    """Load multi-event input JSON into `EventInput` objects.

    Expected shape:
    {
      "events": [
        {"collision": {...}, "tracks": [...], "v0s": [...]},
        ...
      ]
    }
    """
    data = _load_json(path)
    events_data = data.get("events")
    if not isinstance(events_data, list):
        raise ValueError("Events JSON must contain a list under key 'events'.")
    out: list[EventInput] = []
    for idx, event in enumerate(events_data):
        if not isinstance(event, dict):
            raise ValueError(f"Event entry at index {idx} must be an object.")
        collision = _parse_collision_item(event.get("collision"), idx, f"{path}")
        context = f"collision {collision.collision_id}"
        tracks_data = event.get("tracks", [])
        v0s_data = event.get("v0s", [])
        if not isinstance(tracks_data, list) or not isinstance(v0s_data, list):
            raise ValueError(f"Event at index {idx} must hold 'tracks' and 'v0s' lists.")
        tracks = tuple(
            _parse_track_item(item, tidx, context, collision.collision_id)
            for tidx, item in enumerate(tracks_data)
        )
        v0s = tuple(
            _parse_v0_item(item, vidx, context, collision.collision_id)
            for vidx, item in enumerate(v0s_data)
        )
        out.append(EventInput(collision=collision, tracks=tracks, v0s=v0s))
    logger.info("Loaded %d events from %s", len(out), path)
    return out


def load_events_tables(
    events_path: str | Path,
    tracks_path: str | Path,
    v0s_path: str | Path,
) -> list[EventInput]:
    """Load columnar collision/track/V0 tables and group them per collision.

    Each table may be parquet, csv or pickle; rows are joined on
    `collision_id`. Event order follows the collision table, which must not
    repeat a `collision_id`.
    """
    collisions = _read_records(events_path)
    tracks_by_collision: dict[int, list[TrackRecord]] = defaultdict(list)
    for idx, row in enumerate(_read_records(tracks_path)):
        track = _parse_track_item(row, idx, f"{tracks_path}")
        tracks_by_collision[track.collision_id].append(track)
    v0s_by_collision: dict[int, list[V0Record]] = defaultdict(list)
    for idx, row in enumerate(_read_records(v0s_path)):
        v0 = _parse_v0_item(row, idx, f"{v0s_path}")
        v0s_by_collision[v0.collision_id].append(v0)

    out: list[EventInput] = []
    seen: set[int] = set()
    for idx, row in enumerate(collisions):
        collision = _parse_collision_item(row, idx, f"{events_path}")
        cid = collision.collision_id
        if cid in seen:
            raise ValueError(f"Collision {cid} appears more than once in {events_path}.")
        seen.add(cid)
        out.append(
            EventInput(
                collision=collision,
                tracks=tuple(tracks_by_collision.pop(cid, ())),
                v0s=tuple(v0s_by_collision.pop(cid, ())),
            )
        )
    orphans = set(tracks_by_collision) | set(v0s_by_collision)
    if orphans:
        raise ValueError(
            f"Tracks or V0s reference unknown collisions: {', '.join(str(c) for c in sorted(orphans))}"
        )
    logger.info("Loaded %d events from tables", len(out))
    return out


def load_config_json(path: str | Path) -> AnalysisConfig:
    """Load a sectioned JSON configuration into `AnalysisConfig`."""
    return AnalysisConfig.from_dict(_load_json(path))


def write_histograms_table(
    path: str | Path,
    histograms: HistogramAccumulator,
    names: list[str] | None = None,
) -> None:
    """Write non-empty histogram bins into a Parquet/CSV/Pickle long table."""
    pd = _require_pandas()
    _write_frame(pd.DataFrame(list(histograms.iter_rows(names))), path)


def write_pairs_table(path: str | Path, pairs: Sequence[PairCandidate]) -> None:
    """Write accepted pion + K0S candidates into a Parquet/CSV/Pickle table."""
    pd = _require_pandas()
    _write_frame(pd.DataFrame(_pair_rows(pairs)), path)


def _pair_rows(pairs: Sequence[PairCandidate]) -> list[dict[str, Any]]:
    """Flatten pair candidates into DataFrame-ready row dictionaries."""
    return [
        {
            "mixed": p.mixed,
            "pion_track_id": p.pion_track_id,
            "v0_id": p.v0_id,
            "pos_track_id": p.pos_track_id,
            "neg_track_id": p.neg_track_id,
            "pion_collision_id": p.pion_collision_id,
            "v0_collision_id": p.v0_collision_id,
            "activity": p.activity,
            "px": p.candidate_p4.px,
            "py": p.candidate_p4.py,
            "pz": p.candidate_p4.pz,
            "energy": p.candidate_p4.e,
            "pt": p.pt,
            "rapidity": p.rapidity,
            "mass": p.mass,
        }
        for p in pairs
    ]


def _write_frame(df, path: str | Path) -> None:
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
    logger.info("Wrote %d rows to %s", len(df), out)


def _read_records(path: str | Path) -> list[dict[str, Any]]:
    """Read one table from disk as a list of row dictionaries."""
    pd = _require_pandas()
    p = Path(path)
    suffix = p.suffix.lower()
    if suffix == ".parquet":
        df = pd.read_parquet(p)
    elif suffix == ".csv":
        df = pd.read_csv(p)
    elif suffix in (".pkl", ".pickle"):
        df = pd.read_pickle(p)
    else:
        raise ValueError(
            f"Unsupported input format '{suffix}'. Use one of: {', '.join(_TABLE_SUFFIXES)}"
        )
    # empty cells become None; the parsers then treat them as absent
    return [
        {key: (None if pd.isna(value) else value) for key, value in row.items()}
        for row in df.to_dict(orient="records")
    ]


def _require_pandas():
    """Import pandas lazily and provide a clear installation hint on failure."""
    try:
        import pandas as pd  # type: ignore
    except ModuleNotFoundError as exc:
        raise ModuleNotFoundError(
            "pandas is required to read and write tables. Install pandas and pyarrow."
        ) from exc
    return pd


def _parse_collision_item(item: Any, idx: int, context: str) -> CollisionRecord:
    """Parse one collision dictionary into a `CollisionRecord`."""
    if not isinstance(item, dict):
        raise ValueError(f"Collision entry at index {idx} in {context} must be an object.")
    item = _without_missing(item)
    return _build(
        lambda: CollisionRecord(
            collision_id=int(item["collision_id"]),
            pos_x=float(item.get("pos_x", 0.0)),
            pos_y=float(item.get("pos_y", 0.0)),
            pos_z=float(item["pos_z"]),
            sel8=_as_bool(item.get("sel8", True)),
            mult_zeq_ft0a=float(item.get("mult_zeq_ft0a", 0.0)),
            mult_zeq_ft0c=float(item.get("mult_zeq_ft0c", 0.0)),
            cent_ft0c=float(item.get("cent_ft0c", 0.0)),
            cent_ft0m=float(item.get("cent_ft0m", 0.0)),
            num_contrib=int(item.get("num_contrib", 0)),
        ),
        f"Collision at index {idx} in {context}",
    )


def _parse_track_item(
    item: Any, idx: int, context: str, collision_id: int | None = None
) -> TrackRecord:
    """Parse one track dictionary into a `TrackRecord`.

    Inside a JSON event the collision id defaults to the enclosing event.
    """
    if not isinstance(item, dict):
        raise ValueError(f"Track entry at index {idx} in {context} must be an object.")
    item = _without_missing(item)
    return _build(
        lambda: TrackRecord(
            track_id=int(item["track_id"]),
            collision_id=int(item.get("collision_id", collision_id)),
            pt=float(item["pt"]),
            eta=float(item["eta"]),
            phi=float(item["phi"]),
            sign=int(item["sign"]),
            its_ncls=int(item.get("its_ncls", 0)),
            tpc_ncls_found=int(item.get("tpc_ncls_found", 0)),
            tpc_ncls_crossed_rows=int(item.get("tpc_ncls_crossed_rows", 0)),
            tpc_crossed_rows_over_findable_cls=float(
                item.get("tpc_crossed_rows_over_findable_cls", 0.0)
            ),
            has_tpc=_as_bool(item.get("has_tpc", True)),
            has_tof=_as_bool(item.get("has_tof", False)),
            dca_xy=float(item.get("dca_xy", 0.0)),
            dca_z=float(item.get("dca_z", 0.0)),
            tpc_nsigma_pi=float(item.get("tpc_nsigma_pi", 0.0)),
            tof_nsigma_pi=float(item.get("tof_nsigma_pi", 0.0)),
            is_global_track=_as_bool(item.get("is_global_track", False)),
            is_global_track_wo_dca=_as_bool(item.get("is_global_track_wo_dca", False)),
            is_pv_contributor=_as_bool(item.get("is_pv_contributor", False)),
        ),
        f"Track at index {idx} in {context}",
    )


def _parse_v0_item(
    item: Any, idx: int, context: str, collision_id: int | None = None
) -> V0Record:
    """Parse one V0 dictionary into a `V0Record`.

    `y_k0short` is derived from pt and eta with the K0S mass when absent or
    empty.
    """
    if not isinstance(item, dict):
        raise ValueError(f"V0 entry at index {idx} in {context} must be an object.")
    item = _without_missing(item)

    def build() -> V0Record:
        pt = float(item["pt"])
        eta = float(item["eta"])
        y = item.get("y_k0short")
        return V0Record(
            v0_id=int(item.get("v0_id", idx)),
            collision_id=int(item.get("collision_id", collision_id)),
            pos_track_id=int(item["pos_track_id"]),
            neg_track_id=int(item["neg_track_id"]),
            pt=pt,
            eta=eta,
            phi=float(item["phi"]),
            dca_v0_to_pv=float(item["dca_v0_to_pv"]),
            y_k0short=rapidity_from_pt_eta(pt, eta, MASS_K0S) if y is None else float(y),
            qt_arm=float(item["qt_arm"]),
            alpha=float(item["alpha"]),
            dca_v0_daughters=float(item["dca_v0_daughters"]),
            v0_cos_pa=float(item["v0_cos_pa"]),
            v0_radius=float(item["v0_radius"]),
            m_k0short=float(item["m_k0short"]),
            x=float(item.get("x", 0.0)),
            y=float(item.get("y", 0.0)),
            z=float(item.get("z", 0.0)),
        )

    return _build(build, f"V0 at index {idx} in {context}")


def _build(factory: Callable[[], Any], context: str):
    """Run a record factory, turning missing or malformed fields into `ValueError`."""
    try:
        return factory()
    except KeyError as exc:
        raise ValueError(f"{context} is missing required field {exc}.") from exc
    except (TypeError, ValueError) as exc:
        raise ValueError(f"{context} is malformed: {exc}") from exc


def _without_missing(item: dict[str, Any]) -> dict[str, Any]:
    """Drop null and NaN cells so they count as absent fields, not as values."""
    return {
        key: value
        for key, value in item.items()
        if value is not None and not (isinstance(value, float) and math.isnan(value))
    }


def _as_bool(value: Any) -> bool:
    """Interpret JSON/CSV booleans, including 'true'/'false' strings."""
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in ("true", "1", "yes"):
            return True
        if lowered in ("false", "0", "no", ""):
            return False
        raise ValueError(f"Cannot interpret {value!r} as a boolean.")
    return bool(value)


def _load_json(path: str | Path) -> dict[str, Any]:
    """Read and validate a JSON object document from disk."""
    raw = Path(path).read_text(encoding="utf-8")
    data = json.loads(raw)
    if not isinstance(data, dict):
        raise ValueError(f"JSON document at {path} must be an object.")
    return data
