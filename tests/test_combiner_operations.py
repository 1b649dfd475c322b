"""Unit tests for same-event and mixed-event combiner operations."""

from __future__ import annotations

import unittest
from dataclasses import replace

import hist
import numpy as np

from kstarcomb import (
    AnalysisConfig,
    AxisSpec,
    CollisionRecord,
    EventInput,
    HistogramAccumulator,
    LorentzVector,
    MixingConfig,
    QAConfig,
    ResonanceCombiner,
    TrackRecord,
    V0Record,
    make_kshort,
    make_pion,
)
from kstarcomb.models import MASS_K0S
from kstarcomb.physics import rapidity_from_pt_eta


def _track(track_id: int, collision_id: int, pt: float, eta: float, phi: float, sign: int) -> TrackRecord:
    """Build a track passing pion PID, preselection and daughter quality."""
    return TrackRecord(
        track_id=track_id,
        collision_id=collision_id,
        pt=pt,
        eta=eta,
        phi=phi,
        sign=sign,
        its_ncls=7,
        tpc_ncls_found=120,
        tpc_ncls_crossed_rows=100,
        tpc_crossed_rows_over_findable_cls=1.0,
        dca_xy=0.5,
        dca_z=0.5,
        tpc_nsigma_pi=0.2,
        is_pv_contributor=True,
    )


def _event(
    collision_id: int,
    pos_z: float = 1.0,
    cent: float = 20.0,
    sel8: bool = True,
    pion_eta: float = 0.1,
    v0_eta: float = 0.0,
) -> EventInput:
    """One event with a primary pion and a K0S decaying into two extra tracks.

    Track ids are `100 * collision_id + {1, 10, 11}`; the V0 id is
    `1000 * collision_id`.
    """
    base = 100 * collision_id
    pion = _track(base + 1, collision_id, pt=1.0, eta=pion_eta, phi=0.0, sign=1)
    pos = _track(base + 10, collision_id, pt=0.5, eta=0.3, phi=0.3, sign=1)
    neg = _track(base + 11, collision_id, pt=0.5, eta=0.3, phi=0.5, sign=-1)
    v0 = V0Record(
        v0_id=1000 * collision_id,
        collision_id=collision_id,
        pos_track_id=pos.track_id,
        neg_track_id=neg.track_id,
        pt=2.0,
        eta=v0_eta,
        phi=0.42,
        dca_v0_to_pv=0.1,
        y_k0short=rapidity_from_pt_eta(2.0, v0_eta, MASS_K0S),
        qt_arm=0.2,
        alpha=0.5,
        dca_v0_daughters=0.5,
        v0_cos_pa=0.999,
        v0_radius=5.0,
        m_k0short=0.497,
        x=5.0,
        y=0.0,
        z=pos_z,
    )
    collision = CollisionRecord(
        collision_id=collision_id, pos_x=0.0, pos_y=0.0, pos_z=pos_z, sel8=sel8, cent_ft0c=cent
    )
    return EventInput(collision=collision, tracks=(pion, pos, neg), v0s=(v0,))


def _reference_p4(pion_eta: float = 0.1, v0_eta: float = 0.0) -> LorentzVector:
    """Expected pion + K0S 4-vector for the primary pion of `_event`."""
    return LorentzVector.from_pt_eta_phi_m(1.0, pion_eta, 0.0, make_pion().mass) + (
        LorentzVector.from_pt_eta_phi_m(2.0, v0_eta, 0.42, make_kshort().mass)
    )


def _displaced(event: EventInput, pos_x: float, v0_x: float) -> EventInput:
    """Move the primary vertex and the V0 decay vertex of `_event` along x."""
    return EventInput(
        collision=replace(event.collision, pos_x=pos_x),
        tracks=event.tracks,
        v0s=tuple(replace(v0, x=v0_x) for v0 in event.v0s),
    )


def _single_bin_config() -> AnalysisConfig:
    """Config whose mixing pool puts every in-range event in the same vertex bin."""
    return AnalysisConfig(mixing=MixingConfig(vertex_axis=AxisSpec(1, -10.0, 10.0)))


class TestSameEventCombiner(unittest.TestCase):
    """Validate same-event pairing, daughter exclusion and the rapidity window."""

    def test_single_pion_and_kshort_fill_one_entry(self) -> None:
        combiner = ResonanceCombiner()
        [pair] = combiner.combine_same_event(_event(1))

        expected = _reference_p4()
        self.assertLess(abs(expected.rapidity), 0.5)
        self.assertEqual(pair.pion_track_id, 101)
        self.assertEqual(pair.v0_id, 1000)
        self.assertFalse(pair.mixed)
        self.assertEqual(pair.activity, 20.0)
        self.assertAlmostEqual(pair.pt, expected.pt, places=12)
        self.assertAlmostEqual(pair.mass, expected.mass, places=12)
        self.assertAlmostEqual(pair.rapidity, expected.rapidity, places=12)

        h = combiner.histograms["same_event"]
        self.assertEqual(combiner.histograms.entries("same_event"), 1.0)
        self.assertEqual(h[hist.loc(20.0), hist.loc(pair.pt), hist.loc(pair.mass)], 1.0)
        self.assertEqual(combiner.histograms.entries("mixed_event"), 0.0)
        self.assertEqual(combiner.histograms.entries("vertex_z"), 1.0)

    def test_pair_outside_rapidity_window_is_dropped(self) -> None:
        expected = _reference_p4(pion_eta=0.79, v0_eta=0.5)
        self.assertGreater(abs(expected.rapidity), 0.5)

        combiner = ResonanceCombiner()
        pairs = combiner.combine_same_event(_event(1, pion_eta=0.79, v0_eta=0.5))

        self.assertEqual(pairs, [])
        self.assertEqual(combiner.histograms.entries("same_event"), 0.0)

    def test_daughters_never_pair_with_their_own_v0(self) -> None:
        """Daughter tracks pass the pion selection but are excluded from their V0."""
        combiner = ResonanceCombiner()
        event = _event(1)
        pions = combiner.select_pions(event)
        self.assertEqual({p.track_id for p in pions}, {101, 110, 111})

        pairs = combiner.combine_same_event(event)
        for pair in pairs:
            self.assertNotIn(pair.pion_track_id, (pair.pos_track_id, pair.neg_track_id))
            self.assertEqual(pair.pion_collision_id, pair.v0_collision_id)
        self.assertEqual([p.pion_track_id for p in pairs], [101])

    def test_rejected_event_is_skipped_entirely(self) -> None:
        combiner = ResonanceCombiner()
        self.assertEqual(combiner.combine_same_event(_event(1, sel8=False)), [])
        self.assertEqual(combiner.combine_same_event(_event(2, pos_z=10.5)), [])
        self.assertEqual(combiner.histograms.entries("vertex_z"), 0.0)

    def test_qa_histograms_follow_flags(self) -> None:
        config = AnalysisConfig(qa=QAConfig(qa_before=True, qa_after=True, qa_v0=True))
        combiner = ResonanceCombiner(config=config)
        combiner.combine_same_event(_event(1))
        self.assertEqual(combiner.histograms.entries("nsigma_tpc_before"), 3.0)
        self.assertEqual(combiner.histograms.entries("eta_after"), 3.0)
        self.assertEqual(combiner.histograms.entries("v0_cos_pa"), 1.0)
        self.assertNotIn("eta_after", HistogramAccumulator(AnalysisConfig()))

    def test_combine_events_aggregates_candidates(self) -> None:
        combiner = ResonanceCombiner()
        pairs = combiner.combine_events([_event(1), _event(2), _event(3, sel8=False)])
        self.assertEqual(sorted(p.pion_collision_id for p in pairs), [1, 2])
        self.assertEqual(combiner.histograms.entries("same_event"), 2.0)


class TestMixedEventCombiner(unittest.TestCase):
    """Validate mixed-event pairing order and bin requirements."""

    def test_tracks_from_first_event_v0s_from_second(self) -> None:
        combiner = ResonanceCombiner(config=_single_bin_config())
        e1 = _event(1, pos_z=1.0, cent=20.0)
        e2 = _event(2, pos_z=9.9, cent=22.0)

        pairs = combiner.combine_mixed([e1, e2])

        self.assertEqual(len(pairs), 3)
        self.assertTrue(all(p.mixed for p in pairs))
        self.assertEqual({p.pion_collision_id for p in pairs}, {1})
        self.assertEqual({p.v0_collision_id for p in pairs}, {2})
        self.assertEqual({p.pion_track_id for p in pairs}, {101, 110, 111})
        self.assertTrue(all(p.activity == 20.0 for p in pairs))
        self.assertEqual(combiner.histograms.entries("mixed_event"), 3.0)
        self.assertEqual(combiner.histograms.entries("same_event"), 0.0)

    def test_events_in_different_bins_do_not_mix(self) -> None:
        combiner = ResonanceCombiner()
        pairs = combiner.combine_mixed([_event(1, pos_z=1.0), _event(2, pos_z=9.9)])
        self.assertEqual(pairs, [])
        pairs = combiner.combine_mixed([_event(1, cent=20.0), _event(2, cent=80.0)])
        self.assertEqual(pairs, [])

    def test_pair_with_failed_quality_flag_is_skipped(self) -> None:
        combiner = ResonanceCombiner(config=_single_bin_config())
        pairs = combiner.combine_mixed([_event(1), _event(2, sel8=False), _event(3)])
        self.assertEqual(len(pairs), 3)
        self.assertEqual({(p.pion_collision_id, p.v0_collision_id) for p in pairs}, {(1, 3)})

    def test_single_event_never_mixes_with_itself(self) -> None:
        combiner = ResonanceCombiner(config=_single_bin_config())
        self.assertEqual(combiner.combine_mixed([_event(1)]), [])

    def test_pool_depth_limits_partners(self) -> None:
        config = AnalysisConfig(
            mixing=MixingConfig(n_mixed_events=1, vertex_axis=AxisSpec(1, -10.0, 10.0))
        )
        combiner = ResonanceCombiner(config=config)
        pairs = combiner.combine_mixed([_event(1), _event(2), _event(3)])
        self.assertEqual(
            sorted({(p.pion_collision_id, p.v0_collision_id) for p in pairs}), [(1, 2), (2, 3)]
        )

    def test_events_sharing_a_collision_id_keep_their_own_content(self) -> None:
        """A later event reusing collision id 1 must not inherit the first event's pions."""
        combiner = ResonanceCombiner(config=_single_bin_config())
        empty = EventInput(collision=_event(1).collision, tracks=(), v0s=())
        pairs = combiner.combine_mixed([_event(1), _event(2), empty, _event(3)])

        counts: dict[tuple[int, int], int] = {}
        for p in pairs:
            key = (p.pion_collision_id, p.v0_collision_id)
            counts[key] = counts.get(key, 0) + 1
        self.assertEqual(counts, {(1, 2): 3, (1, 3): 3, (2, 3): 3})
        self.assertEqual(combiner.histograms.entries("mixed_event"), 9.0)

    def test_kshorts_use_the_vertex_of_their_own_event(self) -> None:
        """The lifetime cut (ctau < 15 cm, p = 2 GeV/c) sees the V0 event's vertex."""
        near_own_vertex = ResonanceCombiner(config=_single_bin_config())
        pairs = near_own_vertex.combine_mixed(
            [_displaced(_event(1), pos_x=-70.0, v0_x=5.0), _displaced(_event(2), pos_x=0.0, v0_x=5.0)]
        )
        self.assertEqual(len(pairs), 3)

        far_from_own_vertex = ResonanceCombiner(config=_single_bin_config())
        pairs = far_from_own_vertex.combine_mixed(
            [_displaced(_event(1), pos_x=0.0, v0_x=5.0), _displaced(_event(2), pos_x=-70.0, v0_x=5.0)]
        )
        self.assertEqual(pairs, [])

    def test_daughter_selection_applies_to_mixed_kshorts(self) -> None:
        second = _event(2)
        tracks = tuple(
            replace(t, tpc_ncls_crossed_rows=10) if t.track_id == 211 else t for t in second.tracks
        )
        second = EventInput(collision=second.collision, tracks=tracks, v0s=second.v0s)

        combiner = ResonanceCombiner(config=_single_bin_config())
        self.assertEqual(combiner.combine_mixed([_event(1), second]), [])
        self.assertEqual(combiner.histograms.entries("mixed_event"), 0.0)


class TestAccumulation(unittest.TestCase):
    """Validate reproducibility and shard merging of histogram contents."""

    def test_rerun_gives_identical_histograms(self) -> None:
        events = [_event(1), _event(2, pos_z=2.0, cent=21.0), _event(3, pos_z=-3.0, cent=55.0)]
        runs = []
        for _ in range(2):
            combiner = ResonanceCombiner(config=_single_bin_config())
            combiner.combine_events(events)
            combiner.combine_mixed(events)
            runs.append(combiner.histograms)
        for name in runs[0].names():
            self.assertTrue(np.array_equal(runs[0][name].values(flow=True), runs[1][name].values(flow=True)), name)

    def test_sharded_accumulators_merge_to_single_run(self) -> None:
        events = [_event(1), _event(2, cent=40.0), _event(3, cent=60.0)]
        single = ResonanceCombiner()
        single.combine_events(events)

        shard_a = ResonanceCombiner()
        shard_a.combine_events(events[:1])
        shard_b = ResonanceCombiner()
        shard_b.combine_events(events[1:])
        merged = shard_a.histograms
        merged += shard_b.histograms

        for name in single.histograms.names():
            self.assertTrue(
                np.array_equal(single.histograms[name].values(flow=True), merged[name].values(flow=True)),
                name,
            )

    def test_merge_rejects_different_bookings(self) -> None:
        plain = HistogramAccumulator(AnalysisConfig())
        with_qa = HistogramAccumulator(AnalysisConfig(qa=QAConfig(qa_v0=True)))
        with self.assertRaises(ValueError):
            plain += with_qa


if __name__ == "__main__":
    unittest.main()
