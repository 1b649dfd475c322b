"""High-level combination engine for pion + K0S resonance candidates."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Iterable, Sequence

from .activity import event_activity
from .histograms import HistogramAccumulator
from .mixing import EventMixer, SimilarityBinning
from .models import (
    AnalysisConfig,
    EventInput,
    KShortCandidate,
    PairCandidate,
    PionCandidate,
)
from .physics import pair_kinematics, track_to_lorentz, v0_to_lorentz
from .pid import is_pion_like, make_kshort, make_pion
from .selection import (
    V0Selector,
    is_daughter_accepted,
    is_event_accepted,
    is_track_accepted,
    is_track_preselected,
    is_vertex_z_accepted,
)

logger = logging.getLogger(__name__)


@dataclass
class ResonanceCombiner:
    """Build pion x K0S invariant-mass spectra in same and mixed events.

    The accumulator is injected so several combiners (e.g. one per shard of
    the input) can fill separate instances that are merged afterwards.
    """

    config: AnalysisConfig = field(default_factory=AnalysisConfig)
    histograms: HistogramAccumulator | None = None

    def __post_init__(self) -> None:
        if self.histograms is None:
            self.histograms = HistogramAccumulator(self.config)
        self._pion = make_pion()
        self._kshort = make_kshort()

    def select_pions(self, event: EventInput, fill_qa: bool = True) -> list[PionCandidate]:
        """Apply PID, preselection and track quality to every track of an event."""
        cfg = self.config
        hists = self.histograms if fill_qa else None
        out: list[PionCandidate] = []
        for track in event.tracks:
            if not is_track_preselected(track, cfg.track):
                continue
            if hists is not None:
                hists.fill("nsigma_tpc_before", track.tpc_nsigma_pi)
                hists.fill("nsigma_tof_before", track.tof_nsigma_pi)
            if not is_pion_like(track, cfg.pid):
                continue
            if not is_track_accepted(track, cfg.track):
                continue
            if hists is not None:
                hists.fill("eta_after", track.eta)
                hists.fill("dca_xy_after", track.dca_xy)
                hists.fill("dca_z_after", track.dca_z)
                hists.fill("nsigma_tpc_after", track.tpc_nsigma_pi)
                hists.fill("nsigma_tof_after", track.tof_nsigma_pi)
            out.append(
                PionCandidate(
                    track_id=track.track_id,
                    collision_id=track.collision_id,
                    p4=track_to_lorentz(track, self._pion.mass),
                )
            )
        return out

    def select_kshorts(
        self, event: EventInput, activity: float, fill_qa: bool = True
    ) -> list[KShortCandidate]:
        """Apply daughter and topological selections to every V0 of an event."""
        cfg = self.config
        v0_selector = V0Selector(cfg.v0, self.histograms if fill_qa else None)
        out: list[KShortCandidate] = []
        for v0 in event.v0s:
            pos, neg = event.daughters(v0)
            if not is_daughter_accepted(pos, +1, pos.tpc_nsigma_pi, cfg.daughter):
                continue
            if not is_daughter_accepted(neg, -1, neg.tpc_nsigma_pi, cfg.daughter):
                continue
            if not v0_selector.is_accepted(event.collision, v0, activity):
                continue
            out.append(
                KShortCandidate(
                    v0_id=v0.v0_id,
                    collision_id=v0.collision_id,
                    pos_track_id=pos.track_id,
                    neg_track_id=neg.track_id,
                    p4=v0_to_lorentz(v0, self._kshort.mass),
                )
            )
        return out

    def combine_same_event(self, event: EventInput) -> list[PairCandidate]:
        """Build same-event pion x K0S candidates and fill the unlike-sign spectrum.

        Workflow:
        1. Reject events failing the vertex or `sel8` requirement.
        2. Compute the activity estimator and fill event QA.
        3. Select pions and K0S candidates.
        4. Pair them, skipping pions used as K0S daughters and mismatched collisions.
        5. Keep candidates inside the rapidity window.
        """
        if not is_event_accepted(event.collision, self.config.event):
            logger.debug("Collision %s rejected by event selection", event.collision_id)
            return []
        activity = event_activity(event.collision, self.config.activity)
        self.histograms.fill("vertex_z", event.collision.pos_z)
        self.histograms.fill("activity", activity)

        pions = self.select_pions(event)
        kshorts = self.select_kshorts(event, activity)
        return self._combine(pions, kshorts, activity, mixed=False)

    def combine_events(self, events: Iterable[EventInput]) -> list[PairCandidate]:
        """Run `combine_same_event` on a sequence of events and aggregate candidates."""
        out: list[PairCandidate] = []
        n_events = 0
        for event in events:
            out.extend(self.combine_same_event(event))
            n_events += 1
        logger.info("Same-event pass: %d events, %d candidates", n_events, len(out))
        return out

    def combine_mixed(self, events: Sequence[EventInput]) -> list[PairCandidate]:
        """Build mixed-event candidates from similarity-binned event pairs.

        Tracks come from the first (earlier) event of each pair, V0s from the
        second one, evaluated against the second event's vertex. Per-event
        selections are computed once and reused for every pairing; V0 and
        track QA are filled only by the same-event pass.
        """
        cfg = self.config
        binning = SimilarityBinning(cfg.mixing, cfg.activity)
        mixer = EventMixer(binning, cfg.mixing.n_mixed_events)
        # caches are keyed by id(event): distinct events may share a collision id,
        # and holding every event keeps those ids unique for the whole pass
        events = list(events)
        pooled = (e for e in events if is_vertex_z_accepted(e.collision, cfg.event))

        pion_cache: dict[int, list[PionCandidate]] = {}
        kshort_cache: dict[int, list[KShortCandidate]] = {}
        out: list[PairCandidate] = []
        n_pairs = 0
        for first, second in mixer.iter_pairs(pooled):
            if cfg.event.require_sel8 and not (first.collision.sel8 and second.collision.sel8):
                continue
            n_pairs += 1
            activity = event_activity(first.collision, cfg.activity)
            pions = pion_cache.get(id(first))
            if pions is None:
                pions = pion_cache[id(first)] = self.select_pions(first, fill_qa=False)
            kshorts = kshort_cache.get(id(second))
            if kshorts is None:
                kshorts = kshort_cache[id(second)] = self.select_kshorts(
                    second, activity, fill_qa=False
                )
            out.extend(self._combine(pions, kshorts, activity, mixed=True))
        logger.info("Mixed-event pass: %d event pairs, %d candidates", n_pairs, len(out))
        return out

    def _combine(
        self,
        pions: Sequence[PionCandidate],
        kshorts: Sequence[KShortCandidate],
        activity: float,
        mixed: bool,
    ) -> list[PairCandidate]:
        """Cross product of pions and K0S candidates with the rapidity window."""
        results: list[PairCandidate] = []
        for pion in pions:
            for kshort in kshorts:
                if pion.track_id in (kshort.pos_track_id, kshort.neg_track_id):
                    continue
                if not mixed and pion.collision_id != kshort.collision_id:
                    continue
                p4 = pion.p4 + kshort.p4
                pt, rapidity, mass = pair_kinematics(p4)
                if abs(rapidity) >= self.config.max_pair_rapidity:
                    continue
                self.histograms.fill_pair(mixed, activity, pt, mass)
                results.append(
                    PairCandidate(
                        pion_track_id=pion.track_id,
                        v0_id=kshort.v0_id,
                        pos_track_id=kshort.pos_track_id,
                        neg_track_id=kshort.neg_track_id,
                        pion_collision_id=pion.collision_id,
                        v0_collision_id=kshort.collision_id,
                        activity=activity,
                        candidate_p4=p4,
                        pt=pt,
                        rapidity=rapidity,
                        mass=mass,
                        mixed=mixed,
                    )
                )
        return results
