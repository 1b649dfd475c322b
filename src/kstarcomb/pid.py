"""Particle-hypothesis helpers and the pion identification selector.

This module exposes named hypothesis builders used to assign masses to
accepted tracks and V0s, plus `is_pion_like`, which decides whether a track
is compatible with the charged-pion hypothesis.
"""

from __future__ import annotations

from .models import MASS_K0S, ParticleHypothesis, PidSelection, TrackRecord

_PION = ParticleHypothesis(name="pi", mass=0.13957039, pdg_id=211)
_KSHORT = ParticleHypothesis(name="K0S", mass=MASS_K0S, pdg_id=310)
_KSTAR_CHARGED = ParticleHypothesis(name="K*+", mass=0.89167, pdg_id=323)

_NAME_TO_HYPOTHESIS: dict[str, ParticleHypothesis] = {
    "pi": _PION,
    "pion": _PION,
    "k0s": _KSHORT,
    "kshort": _KSHORT,
    "k*+": _KSTAR_CHARGED,
    "kstar": _KSTAR_CHARGED,
}


def make_pion() -> ParticleHypothesis:
    """Return the standard charged-pion mass hypothesis."""
    return _PION


def make_kshort() -> ParticleHypothesis:
    """Return the K0S mass hypothesis."""
    return _KSHORT


def make_charged_kstar() -> ParticleHypothesis:
    """Return the charged K*(892) mass hypothesis."""
    return _KSTAR_CHARGED


def particle_hypothesis_from_name(name: str) -> ParticleHypothesis:
    """Resolve a short particle name (e.g. `pi`, `k0s`) into a hypothesis."""
    key = name.strip().lower()
    try:
        return _NAME_TO_HYPOTHESIS[key]
    except KeyError as exc:
        supported = ", ".join(sorted(_NAME_TO_HYPOTHESIS))
        raise ValueError(
            f"Unknown particle hypothesis name '{name}'. Supported names: {supported}"
        ) from exc


def is_pion_like(track: TrackRecord, selection: PidSelection) -> bool:
    """Return True if the track passes the pion PID selection.

    Tracks with a TOF measurement use the TPC+TOF nsigma added in quadrature;
    tracks without TOF fall back to the TPC nsigma alone.
    """
    if track.has_tof:
        combined2 = (
            track.tpc_nsigma_pi * track.tpc_nsigma_pi
            + track.tof_nsigma_pi * track.tof_nsigma_pi
        )
        return combined2 < selection.max_combined_nsigma * selection.max_combined_nsigma
    return abs(track.tpc_nsigma_pi) < selection.max_tpc_nsigma
