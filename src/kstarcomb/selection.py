"""Event, track, V0-daughter and V0 selections.

Every selector returns a boolean; a failed cut never raises. Cuts are
evaluated in order and the first failure rejects.
"""

from __future__ import annotations

from dataclasses import dataclass

from .histograms import HistogramAccumulator
from .models import (
    CollisionRecord,
    DaughterSelection,
    EventSelection,
    TrackRecord,
    TrackSelection,
    V0Record,
    V0Selection,
)
from .physics import armenteros_ratio, proper_decay_length


def is_vertex_z_accepted(collision: CollisionRecord, selection: EventSelection) -> bool:
    """Vertex-position filter applied to every collision before processing."""
    return abs(collision.pos_z) < selection.max_abs_vertex_z


def is_event_accepted(collision: CollisionRecord, selection: EventSelection) -> bool:
    """Vertex-z filter plus the baseline `sel8` quality flag."""
    if not is_vertex_z_accepted(collision, selection):
        return False
    if selection.require_sel8 and not collision.sel8:
        return False
    return True


def is_track_preselected(track: TrackRecord, selection: TrackSelection) -> bool:
    """Acceptance and DCA window applied to every primary-track candidate."""
    if abs(track.eta) >= selection.max_abs_eta:
        return False
    if abs(track.pt) <= selection.min_pt:
        return False
    if abs(track.dca_xy) >= selection.max_abs_dca_xy:
        return False
    if abs(track.dca_z) >= selection.max_abs_dca_z:
        return False
    return True


def is_track_accepted(track: TrackRecord, selection: TrackSelection) -> bool:
    """Track-quality selection with the custom and manual DCA policies.

    Each enabled policy is a necessary condition on its own.
    """
    if selection.use_custom_dca_cut and not (
        track.is_global_track
        or track.is_pv_contributor
        or track.its_ncls > selection.min_its_clusters
    ):
        return False
    if selection.use_manual_dca_cut and not (
        track.is_global_track_wo_dca
        or track.is_pv_contributor
        or abs(track.dca_xy) < selection.max_abs_dca_xy
        or abs(track.dca_z) < selection.max_abs_dca_z
        or track.its_ncls > selection.min_its_clusters
    ):
        return False
    return True


def is_daughter_accepted(
    track: TrackRecord,
    expected_sign: int,
    nsigma_pi: float,
    selection: DaughterSelection,
) -> bool:
    """Quality, charge and pion-PID requirements on one V0 daughter.

    Only an explicit sign mismatch rejects; a zero `expected_sign` or a zero
    track sign never fails the charge check. The DCA cut keeps daughters
    displaced by at least `min_abs_dca_xy` from the primary vertex.
    """
    if not track.has_tpc:
        return False
    if track.tpc_ncls_crossed_rows < selection.min_crossed_rows:
        return False
    if track.tpc_crossed_rows_over_findable_cls < selection.min_crossed_rows_over_findable:
        return False
    if expected_sign < 0 and track.sign > 0:
        return False
    if expected_sign > 0 and track.sign < 0:
        return False
    if abs(track.eta) > selection.max_abs_eta:
        return False
    if track.tpc_ncls_found < selection.min_tpc_clusters:
        return False
    if abs(track.dca_xy) < selection.min_abs_dca_xy:
        return False
    if abs(nsigma_pi) > selection.max_abs_nsigma:
        return False
    return True


@dataclass
class V0Selector:
    """K0S candidate selection with optional V0 QA filling."""

    selection: V0Selection
    histograms: HistogramAccumulator | None = None

    def is_accepted(self, collision: CollisionRecord, v0: V0Record, activity: float) -> bool:
        """Apply topological, kinematic, lifetime and mass cuts to one V0.

        `collision` provides the vertex used for the proper decay length; in
        mixed events that is the vertex of the V0's own collision.
        """
        sel = self.selection
        if abs(v0.dca_v0_to_pv) > sel.max_dca_to_pv:
            return False
        if abs(v0.y_k0short) > sel.max_abs_rapidity:
            return False
        if armenteros_ratio(v0.qt_arm, v0.alpha) < sel.min_armenteros_ratio:
            return False
        if v0.pt < sel.min_pt:
            return False
        if v0.dca_v0_daughters > sel.max_dca_daughters:
            return False
        if v0.v0_cos_pa < sel.min_cos_pa:
            return False
        if v0.v0_radius < sel.min_radius or v0.v0_radius > sel.max_radius:
            return False
        ctau = proper_decay_length(v0, collision)
        low, high = sel.mass_window
        if abs(ctau) > sel.max_lifetime or v0.m_k0short < low or v0.m_k0short > high:
            return False

        if self.histograms is not None:
            self.histograms.fill("v0_lifetime", ctau)
            self.histograms.fill("v0_mass_pt_activity", v0.m_k0short, v0.pt, activity)
            self.histograms.fill("v0_dca_daughters", v0.dca_v0_daughters)
            self.histograms.fill("v0_cos_pa", v0.v0_cos_pa)
        return True
