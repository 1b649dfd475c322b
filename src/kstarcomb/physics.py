"""Physics/math helpers for building and filtering resonance candidates."""

from __future__ import annotations

import math

from .models import MASS_K0S, CollisionRecord, LorentzVector, TrackRecord, V0Record


def track_to_lorentz(track: TrackRecord, mass: float) -> LorentzVector:
    """Convert a track plus mass hypothesis into a Lorentz 4-vector."""
    return LorentzVector.from_pt_eta_phi_m(track.pt, track.eta, track.phi, mass)


def v0_to_lorentz(v0: V0Record, mass: float = MASS_K0S) -> LorentzVector:
    """Convert a V0 into a 4-vector with the nominal (not reconstructed) mass."""
    return LorentzVector.from_pt_eta_phi_m(v0.pt, v0.eta, v0.phi, mass)


def pair_kinematics(p4: LorentzVector) -> tuple[float, float, float]:
    """Return `(pt, rapidity, mass)` from a candidate 4-vector."""
    return p4.pt, p4.rapidity, p4.mass


def rapidity_from_pt_eta(pt: float, eta: float, mass: float) -> float:
    """Rapidity of a particle given collider coordinates and a mass."""
    return LorentzVector.from_pt_eta_phi_m(pt, eta, 0.0, mass).rapidity


def armenteros_ratio(qt_arm: float, alpha: float) -> float:
    """Return `qt / alpha` of the Armenteros-Podolanski plot.

    A zero `alpha` gives an infinity signed like the float division would
    (`-0.0` flips it); `qt_arm == 0` with `alpha == 0` maps to `+inf`.
    """
    if alpha == 0.0:
        if qt_arm == 0.0:
            return math.inf
        return math.copysign(math.inf, qt_arm) * math.copysign(1.0, alpha)
    return qt_arm / alpha


def proper_decay_length(v0: V0Record, collision: CollisionRecord, mass: float = MASS_K0S) -> float:
    """Proper decay length `L / p * m` with respect to the collision vertex."""
    return v0.distance_over_momentum(collision.pos_x, collision.pos_y, collision.pos_z) * mass
