"""Core data models used by the resonance-combination framework.

This module defines:
- immutable input records (`CollisionRecord`, `TrackRecord`, `V0Record`)
- event containers with O(1) track lookup (`EventInput`)
- 4-vectors and particle-mass assignment objects (`LorentzVector`, `ParticleHypothesis`)
- selected candidates and combination outputs (`PionCandidate`, `KShortCandidate`, `PairCandidate`)
- configurable selection controls, assembled into `AnalysisConfig`.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from functools import cached_property
from typing import Any, Mapping

MASS_K0S = 0.497611


@dataclass(frozen=True)
class CollisionRecord:
    """Collision-level quantities for one event."""

    collision_id: int
    pos_x: float
    pos_y: float
    pos_z: float
    sel8: bool = True
    mult_zeq_ft0a: float = 0.0
    mult_zeq_ft0c: float = 0.0
    cent_ft0c: float = 0.0
    cent_ft0m: float = 0.0
    num_contrib: int = 0


@dataclass(frozen=True)
class TrackRecord:
    """Charged track with precomputed kinematics, quality flags, and pion PID."""

    track_id: int
    collision_id: int
    pt: float
    eta: float
    phi: float
    sign: int
    its_ncls: int = 0
    tpc_ncls_found: int = 0
    tpc_ncls_crossed_rows: int = 0
    tpc_crossed_rows_over_findable_cls: float = 0.0
    has_tpc: bool = True
    has_tof: bool = False
    dca_xy: float = 0.0
    dca_z: float = 0.0
    tpc_nsigma_pi: float = 0.0
    tof_nsigma_pi: float = 0.0
    is_global_track: bool = False
    is_global_track_wo_dca: bool = False
    is_pv_contributor: bool = False


@dataclass(frozen=True)
class V0Record:
    """Secondary-vertex candidate with topology computed upstream.

    `x, y, z` is the decay vertex; together with the momentum it gives the
    decay-length-over-momentum used for the proper lifetime cut.
    """

    v0_id: int
    collision_id: int
    pos_track_id: int
    neg_track_id: int
    pt: float
    eta: float
    phi: float
    dca_v0_to_pv: float
    y_k0short: float
    qt_arm: float
    alpha: float
    dca_v0_daughters: float
    v0_cos_pa: float
    v0_radius: float
    m_k0short: float
    x: float = 0.0
    y: float = 0.0
    z: float = 0.0

    @property
    def p(self) -> float:
        """Total momentum from pt and pseudorapidity."""
        return self.pt * math.cosh(self.eta)

    def distance_over_momentum(self, pv_x: float, pv_y: float, pv_z: float) -> float:
        """Decay distance from a primary vertex divided by total momentum."""
        dx = self.x - pv_x
        dy = self.y - pv_y
        dz = self.z - pv_z
        return math.sqrt(dx * dx + dy * dy + dz * dz) / (self.p + 1e-10)


@dataclass(frozen=True)
class EventInput:
    """One collision with its own track and V0 containers."""

    collision: CollisionRecord
    tracks: tuple[TrackRecord, ...] = ()
    v0s: tuple[V0Record, ...] = ()

    def __post_init__(self):
        cid = self.collision.collision_id
        for t in self.tracks:
            if t.collision_id != cid:
                raise ValueError(
                    f"Track {t.track_id} belongs to collision {t.collision_id}, not {cid}."
                )
        known = {t.track_id for t in self.tracks}
        for v0 in self.v0s:
            if v0.collision_id != cid:
                raise ValueError(
                    f"V0 {v0.v0_id} belongs to collision {v0.collision_id}, not {cid}."
                )
            for daughter_id in (v0.pos_track_id, v0.neg_track_id):
                if daughter_id not in known:
                    raise ValueError(
                        f"V0 {v0.v0_id} references daughter track {daughter_id} "
                        f"missing from collision {cid}."
                    )

    @property
    def collision_id(self) -> int:
        return self.collision.collision_id

    @cached_property
    def tracks_by_id(self) -> dict[int, TrackRecord]:
        """Index of tracks keyed by their global identifier."""
        return {t.track_id: t for t in self.tracks}

    def daughters(self, v0: V0Record) -> tuple[TrackRecord, TrackRecord]:
        """Resolve the positive and negative daughter tracks of a V0."""
        index = self.tracks_by_id
        return index[v0.pos_track_id], index[v0.neg_track_id]


@dataclass(frozen=True)
class ParticleHypothesis:
    """Named particle hypothesis used to derive mass-dependent observables."""

    name: str
    mass: float
    pdg_id: int | None = None


@dataclass(frozen=True)
class LorentzVector:
    """Simple 4-vector with convenience properties and addition."""

    px: float
    py: float
    pz: float
    e: float

    @classmethod
    def from_pt_eta_phi_m(cls, pt: float, eta: float, phi: float, mass: float) -> "LorentzVector":
        """Build a 4-vector from collider coordinates and a mass hypothesis."""
        px = pt * math.cos(phi)
        py = pt * math.sin(phi)
        pz = pt * math.sinh(eta)
        e = math.sqrt(px * px + py * py + pz * pz + mass * mass)
        return cls(px, py, pz, e)

    def __add__(self, other: "LorentzVector") -> "LorentzVector":
        """Component-wise 4-vector addition."""
        return LorentzVector(
            self.px + other.px,
            self.py + other.py,
            self.pz + other.pz,
            self.e + other.e,
        )

    @property
    def p2(self) -> float:
        """Squared 3-momentum magnitude."""
        return self.px * self.px + self.py * self.py + self.pz * self.pz

    @property
    def pt(self) -> float:
        return math.sqrt(self.px * self.px + self.py * self.py)

    @property
    def mass2(self) -> float:
        """Invariant mass squared."""
        return self.e * self.e - self.p2

    @property
    def mass(self) -> float:
        """Invariant mass with signed handling for small negative mass2 values."""
        m2 = self.mass2
        return m2**0.5 if m2 >= 0.0 else -((-m2) ** 0.5)

    @property
    def rapidity(self) -> float:
        """Longitudinal rapidity `0.5 * ln((E + pz) / (E - pz))`."""
        if self.e <= abs(self.pz):
            return math.copysign(1e9, self.pz)
        return 0.5 * math.log((self.e + self.pz) / (self.e - self.pz))


@dataclass(frozen=True)
class PionCandidate:
    """Accepted primary pion, tagged for daughter and provenance checks."""

    track_id: int
    collision_id: int
    p4: LorentzVector


@dataclass(frozen=True)
class KShortCandidate:
    """Accepted K0S candidate, tagged with both daughter identifiers."""

    v0_id: int
    collision_id: int
    pos_track_id: int
    neg_track_id: int
    p4: LorentzVector


@dataclass(frozen=True)
class PairCandidate:
    """One accepted pion + K0S combination."""

    pion_track_id: int
    v0_id: int
    pos_track_id: int
    neg_track_id: int
    pion_collision_id: int
    v0_collision_id: int
    activity: float
    candidate_p4: LorentzVector
    pt: float
    rapidity: float
    mass: float
    mixed: bool = False


@dataclass(frozen=True)
class EventSelection:
    """Collision-level acceptance."""

    max_abs_vertex_z: float = 10.0
    require_sel8: bool = True

    def __post_init__(self):
        if self.max_abs_vertex_z <= 0.0:
            raise ValueError(f"max_abs_vertex_z must be positive, got {self.max_abs_vertex_z}")


@dataclass(frozen=True)
class TrackSelection:
    """Primary-track preselection and quality requirements.

    `min_pt`, `max_abs_eta` and the DCA limits act as a preselection on every
    pion candidate. `use_custom_dca_cut` and `use_manual_dca_cut` switch on
    the two quality policies; when both are on, a track must satisfy both.
    """

    min_pt: float = 0.2
    max_abs_eta: float = 0.8
    max_abs_dca_xy: float = 2.0
    max_abs_dca_z: float = 2.0
    use_custom_dca_cut: bool = False
    use_manual_dca_cut: bool = True
    min_its_clusters: int = 0

    def __post_init__(self):
        if self.max_abs_eta <= 0.0:
            raise ValueError(f"max_abs_eta must be positive, got {self.max_abs_eta}")
        if self.max_abs_dca_xy <= 0.0 or self.max_abs_dca_z <= 0.0:
            raise ValueError("DCA limits must be positive.")


@dataclass(frozen=True)
class PidSelection:
    """Pion PID thresholds (TPC-only and combined TPC+TOF)."""

    max_tpc_nsigma: float = 3.0
    max_combined_nsigma: float = 3.0

    def __post_init__(self):
        if self.max_tpc_nsigma <= 0.0 or self.max_combined_nsigma <= 0.0:
            raise ValueError("PID nsigma thresholds must be positive.")


@dataclass(frozen=True)
class DaughterSelection:
    """Quality and PID requirements on V0 daughter tracks."""

    max_abs_eta: float = 0.8
    min_tpc_clusters: float = 70.0
    min_abs_dca_xy: float = 0.06
    max_abs_nsigma: float = 4.0
    min_crossed_rows: int = 70
    min_crossed_rows_over_findable: float = 0.8


@dataclass(frozen=True)
class V0Selection:
    """Topological, kinematic and lifetime cuts for K0S candidates."""

    min_pt: float = 0.0
    max_dca_daughters: float = 1.0
    min_cos_pa: float = 0.985
    min_radius: float = 0.5
    max_radius: float = 200.0
    max_lifetime: float = 15.0
    max_dca_to_pv: float = 0.3
    mass_sigma: float = 4.0
    mass_width: float = 0.005
    mass_center: float = MASS_K0S
    max_abs_rapidity: float = 0.5
    min_armenteros_ratio: float = 0.2

    def __post_init__(self):
        if self.min_radius > self.max_radius:
            raise ValueError(
                f"min_radius ({self.min_radius}) must not exceed max_radius ({self.max_radius})"
            )
        if self.mass_sigma < 0.0 or self.mass_width < 0.0:
            raise ValueError("mass_sigma and mass_width must be non-negative.")

    @property
    def mass_window(self) -> tuple[float, float]:
        """Accepted `(low, high)` reconstructed-mass range."""
        half = self.mass_sigma * self.mass_width
        return self.mass_center - half, self.mass_center + half


@dataclass(frozen=True)
class ActivitySelection:
    """Flags choosing the event-activity estimator.

    `use_mult_ft0` takes precedence; otherwise `use_cent_ft0c` picks FT0C
    centrality over FT0M centrality.
    """

    use_mult_ft0: bool = False
    use_cent_ft0c: bool = True


@dataclass(frozen=True)
class AxisSpec:
    """Regular binning `(n_bins, low, high)`."""

    n_bins: int
    low: float
    high: float

    def __post_init__(self):
        if self.n_bins <= 0:
            raise ValueError(f"n_bins must be positive, got {self.n_bins}")
        if not self.high > self.low:
            raise ValueError(f"Axis upper edge {self.high} must exceed lower edge {self.low}")

    def index(self, value: float) -> int | None:
        """Bin index of `value`, or `None` outside `[low, high)`."""
        if not self.low <= value < self.high:
            return None
        idx = int((value - self.low) / (self.high - self.low) * self.n_bins)
        return min(idx, self.n_bins - 1)


MIXING_BIN_VARIABLES = ("activity", "num_contrib")


@dataclass(frozen=True)
class MixingConfig:
    """Event-mixing pool depth and similarity binning."""

    n_mixed_events: int = 5
    vertex_axis: AxisSpec = field(default_factory=lambda: AxisSpec(20, -10.0, 10.0))
    activity_axis: AxisSpec = field(default_factory=lambda: AxisSpec(20, 0.0, 100.0))
    num_contrib_axis: AxisSpec = field(default_factory=lambda: AxisSpec(2000, 0.0, 10000.0))
    bin_variable: str = "activity"

    def __post_init__(self):
        if self.n_mixed_events <= 0:
            raise ValueError(f"n_mixed_events must be positive, got {self.n_mixed_events}")
        if self.bin_variable not in MIXING_BIN_VARIABLES:
            raise ValueError(
                f"bin_variable must be one of {MIXING_BIN_VARIABLES}, got '{self.bin_variable}'"
            )


@dataclass(frozen=True)
class QAConfig:
    """Toggles for diagnostic histograms."""

    qa_before: bool = False
    qa_after: bool = False
    qa_v0: bool = False
    n_bins: int = 100


@dataclass(frozen=True)
class AnalysisConfig:
    """Complete selection and mixing configuration for one analysis pass."""

    event: EventSelection = field(default_factory=EventSelection)
    track: TrackSelection = field(default_factory=TrackSelection)
    pid: PidSelection = field(default_factory=PidSelection)
    daughter: DaughterSelection = field(default_factory=DaughterSelection)
    v0: V0Selection = field(default_factory=V0Selection)
    activity: ActivitySelection = field(default_factory=ActivitySelection)
    mixing: MixingConfig = field(default_factory=MixingConfig)
    qa: QAConfig = field(default_factory=QAConfig)
    max_pair_rapidity: float = 0.5

    @classmethod
    def from_dict(cls, config_dict: Mapping[str, Any]) -> "AnalysisConfig":
        """Create a validated config from a sectioned dictionary (e.g. loaded JSON).

        Unknown sections or keys raise `ValueError` so typos do not silently
        fall back to defaults.
        """
        sections = {
            "event": EventSelection,
            "track": TrackSelection,
            "pid": PidSelection,
            "daughter": DaughterSelection,
            "v0": V0Selection,
            "activity": ActivitySelection,
            "qa": QAConfig,
        }
        unknown = set(config_dict) - set(sections) - {"mixing", "max_pair_rapidity"}
        if unknown:
            raise ValueError(f"Unknown configuration sections: {', '.join(sorted(unknown))}")
        kwargs: dict[str, Any] = {}
        for name, section_cls in sections.items():
            kwargs[name] = _build_section(section_cls, config_dict.get(name, {}), name)
        kwargs["mixing"] = _build_mixing(config_dict.get("mixing", {}))
        if "max_pair_rapidity" in config_dict:
            kwargs["max_pair_rapidity"] = float(config_dict["max_pair_rapidity"])
        return cls(**kwargs)


def _build_section(section_cls, values: Any, name: str):
    """Instantiate one flat config section from a dict."""
    if not isinstance(values, Mapping):
        raise ValueError(f"Configuration section '{name}' must be an object.")
    allowed = set(section_cls.__dataclass_fields__)
    unknown = set(values) - allowed
    if unknown:
        raise ValueError(
            f"Unknown keys in configuration section '{name}': {', '.join(sorted(unknown))}"
        )
    return section_cls(**values)


def _build_mixing(values: Any) -> MixingConfig:
    """Instantiate `MixingConfig`, converting `[n, low, high]` axis lists."""
    if not isinstance(values, Mapping):
        raise ValueError("Configuration section 'mixing' must be an object.")
    parsed = dict(values)
    for key in ("vertex_axis", "activity_axis", "num_contrib_axis"):
        if key in parsed:
            raw = parsed[key]
            if not isinstance(raw, (list, tuple)) or len(raw) != 3:
                raise ValueError(f"Mixing axis '{key}' must be a [n_bins, low, high] list.")
            parsed[key] = AxisSpec(int(raw[0]), float(raw[1]), float(raw[2]))
    return _build_section(MixingConfig, parsed, "mixing")
