"""End-to-end synthetic walkthrough for K*+- -> K0S(pi+ pi-) pi+- studies.

This script does three steps:
1. Generate a fake event sample with a configurable signal fraction.
2. Run the same-event and mixed-event combiners on the sample.
3. Write the spectra (and optionally the generated events) for later study.

The mixed-event spectrum, normalised to the same-event one outside the
K* peak, describes the combinatorial background under the peak.

Run from repository root:
    PYTHONPATH=src python3 examples/synthetic_kstar_study.py
"""

from __future__ import annotations

import argparse
import json
import math
from dataclasses import asdict
from pathlib import Path
from random import Random

from kstarcomb import (
    CollisionRecord,
    EventInput,
    ResonanceCombiner,
    TrackRecord,
    V0Record,
    make_charged_kstar,
    make_kshort,
    make_pion,
)
from kstarcomb.io import write_histograms_table

MASS_PI = make_pion().mass
MASS_K0S = make_kshort().mass
MASS_KSTAR = make_charged_kstar().mass
WIDTH_KSTAR = 0.0514
CTAU_K0S_CM = 2.6844

P4 = tuple[float, float, float, float]


def parse_args() -> argparse.Namespace:
    """Parse CLI options for fake-data generation and combining."""
    parser = argparse.ArgumentParser(
        description="Generate a synthetic K*+- sample and build same/mixed-event spectra."
    )
    parser.add_argument("--n-events", type=int, default=2000, help="Number of events to generate.")
    parser.add_argument(
        "--signal-fraction",
        type=float,
        default=0.30,
        help="Fraction of events containing one K*+- decay.",
    )
    parser.add_argument("--seed", type=int, default=12345, help="RNG seed for reproducibility.")
    parser.add_argument(
        "--out-spectra",
        default="examples/output_kstar_spectra.parquet",
        help="Output histogram table (.parquet/.csv/.pkl).",
    )
    parser.add_argument(
        "--out-events",
        default=None,
        help="Optional JSON dump of the generated events, readable by kstar-combiner.",
    )
    return parser.parse_args()


def random_unit_vector(rng: Random) -> tuple[float, float, float]:
    """Sample an isotropic 3D unit vector."""
    cos_theta = rng.uniform(-1.0, 1.0)
    sin_theta = math.sqrt(max(0.0, 1.0 - cos_theta * cos_theta))
    phi = rng.uniform(0.0, 2.0 * math.pi)
    return sin_theta * math.cos(phi), sin_theta * math.sin(phi), cos_theta


def two_body_momentum(parent_mass: float, m1: float, m2: float) -> float:
    """Return daughter momentum magnitude in parent rest frame."""
    term = (parent_mass * parent_mass - (m1 + m2) * (m1 + m2)) * (
        parent_mass * parent_mass - (m1 - m2) * (m1 - m2)
    )
    if term <= 0.0:
        return 0.0
    return math.sqrt(term) / (2.0 * parent_mass)


def lorentz_boost(p4: P4, beta: tuple[float, float, float]) -> P4:
    """Boost an `(E, px, py, pz)` four-vector by a beta vector."""
    e, px, py, pz = p4
    bx, by, bz = beta
    b2 = bx * bx + by * by + bz * bz
    if b2 <= 0.0:
        return p4
    gamma = 1.0 / math.sqrt(max(1e-16, 1.0 - b2))
    bp = bx * px + by * py + bz * pz
    gamma2 = (gamma - 1.0) / b2
    return (
        gamma * (e + bp),
        px + gamma2 * bp * bx + gamma * e * bx,
        py + gamma2 * bp * by + gamma * e * by,
        pz + gamma2 * bp * bz + gamma * e * bz,
    )


def decay_two_body(
    parent: P4, parent_mass: float, m1: float, m2: float, rng: Random
) -> tuple[P4, P4]:
    """Generate an isotropic two-body decay and return lab-frame daughters."""
    p = two_body_momentum(parent_mass, m1, m2)
    u = random_unit_vector(rng)
    d1 = (math.sqrt(m1 * m1 + p * p), p * u[0], p * u[1], p * u[2])
    d2 = (math.sqrt(m2 * m2 + p * p), -p * u[0], -p * u[1], -p * u[2])
    e = parent[0]
    beta = (parent[1] / e, parent[2] / e, parent[3] / e)
    return lorentz_boost(d1, beta), lorentz_boost(d2, beta)


def p4_from_pt_eta_phi(pt: float, eta: float, phi: float, mass: float) -> P4:
    px, py, pz = pt * math.cos(phi), pt * math.sin(phi), pt * math.sinh(eta)
    return math.sqrt(px * px + py * py + pz * pz + mass * mass), px, py, pz


def pt_eta_phi(p4: P4) -> tuple[float, float, float]:
    """Collider coordinates of an `(E, px, py, pz)` four-vector."""
    _, px, py, pz = p4
    pt = math.hypot(px, py)
    return pt, math.asinh(pz / pt) if pt > 0.0 else 0.0, math.atan2(py, px)


def sample_kstar_mass(rng: Random) -> float:
    """Sample a truncated Breit-Wigner K*+- mass."""
    while True:
        m = MASS_KSTAR + 0.5 * WIDTH_KSTAR * math.tan(math.pi * (rng.random() - 0.5))
        if MASS_K0S + MASS_PI + 0.01 <= m <= 1.2:
            return m


def armenteros(pos: P4, neg: P4, v0: P4) -> tuple[float, float]:
    """Return `(qt, alpha)` of the daughters with respect to the V0 direction."""
    norm = math.sqrt(v0[1] ** 2 + v0[2] ** 2 + v0[3] ** 2)
    u = (v0[1] / norm, v0[2] / norm, v0[3] / norm)
    pl_pos = pos[1] * u[0] + pos[2] * u[1] + pos[3] * u[2]
    pl_neg = neg[1] * u[0] + neg[2] * u[1] + neg[3] * u[2]
    p2_pos = pos[1] ** 2 + pos[2] ** 2 + pos[3] ** 2
    qt = math.sqrt(max(0.0, p2_pos - pl_pos * pl_pos))
    return qt, (pl_pos - pl_neg) / (pl_pos + pl_neg)


def make_track(
    rng: Random,
    track_id: int,
    collision_id: int,
    p4: P4,
    sign: int,
    primary: bool,
) -> TrackRecord:
    pt, eta, phi = pt_eta_phi(p4)
    dca_scale = 0.01 if primary else 0.5
    return TrackRecord(
        track_id=track_id,
        collision_id=collision_id,
        pt=pt,
        eta=eta,
        phi=phi,
        sign=sign,
        its_ncls=7 if primary else rng.randint(2, 7),
        tpc_ncls_found=rng.randint(80, 159),
        tpc_ncls_crossed_rows=rng.randint(80, 159),
        tpc_crossed_rows_over_findable_cls=rng.uniform(0.85, 1.1),
        has_tof=rng.random() < 0.6,
        dca_xy=math.copysign(
            abs(rng.gauss(0.0, dca_scale)) + (0.0 if primary else 0.06), rng.uniform(-1.0, 1.0)
        ),
        dca_z=rng.gauss(0.0, dca_scale),
        tpc_nsigma_pi=rng.gauss(0.0, 1.0),
        tof_nsigma_pi=rng.gauss(0.0, 1.0),
        is_global_track=primary,
        is_global_track_wo_dca=True,
        is_pv_contributor=primary,
    )


def generate_event(rng: Random, collision_id: int, with_signal: bool) -> EventInput:
    """Generate one collision with background pions and optionally one K*+- decay."""
    collision = CollisionRecord(
        collision_id=collision_id,
        pos_x=rng.gauss(0.0, 0.01),
        pos_y=rng.gauss(0.0, 0.01),
        pos_z=rng.gauss(0.0, 5.0),
        sel8=rng.random() < 0.95,
        cent_ft0c=rng.uniform(0.0, 100.0),
        cent_ft0m=rng.uniform(0.0, 100.0),
        num_contrib=rng.randint(5, 60),
    )
    next_id = collision_id * 1000
    tracks: list[TrackRecord] = []
    for _ in range(rng.randint(4, 12)):
        pt = rng.expovariate(1.5) + 0.15
        p4 = p4_from_pt_eta_phi(pt, rng.uniform(-0.9, 0.9), rng.uniform(-math.pi, math.pi), MASS_PI)
        tracks.append(make_track(rng, next_id, collision_id, p4, rng.choice((-1, 1)), primary=True))
        next_id += 1

    v0s: list[V0Record] = []
    if with_signal:
        mass = sample_kstar_mass(rng)
        kstar = p4_from_pt_eta_phi(
            rng.uniform(0.5, 6.0), rng.uniform(-0.6, 0.6), rng.uniform(-math.pi, math.pi), mass
        )
        k0s, pion = decay_two_body(kstar, mass, MASS_K0S, MASS_PI, rng)
        pos, neg = decay_two_body(k0s, MASS_K0S, MASS_PI, MASS_PI, rng)

        sign = rng.choice((-1, 1))
        tracks.append(make_track(rng, next_id, collision_id, pion, sign, primary=True))
        pos_track = make_track(rng, next_id + 1, collision_id, pos, +1, primary=False)
        neg_track = make_track(rng, next_id + 2, collision_id, neg, -1, primary=False)
        tracks.extend((pos_track, neg_track))

        p_k0s = math.sqrt(k0s[1] ** 2 + k0s[2] ** 2 + k0s[3] ** 2)
        flight = rng.expovariate(1.0 / (CTAU_K0S_CM * p_k0s / MASS_K0S))
        direction = (k0s[1] / p_k0s, k0s[2] / p_k0s, k0s[3] / p_k0s)
        pv = (collision.pos_x, collision.pos_y, collision.pos_z)
        vtx = tuple(c + flight * d for c, d in zip(pv, direction))
        pt, eta, phi = pt_eta_phi(k0s)
        qt, alpha = armenteros(pos, neg, k0s)
        v0s.append(
            V0Record(
                v0_id=collision_id,
                collision_id=collision_id,
                pos_track_id=pos_track.track_id,
                neg_track_id=neg_track.track_id,
                pt=pt,
                eta=eta,
                phi=phi,
                dca_v0_to_pv=abs(rng.gauss(0.0, 0.05)),
                y_k0short=0.5 * math.log((k0s[0] + k0s[3]) / (k0s[0] - k0s[3])),
                qt_arm=qt,
                alpha=alpha,
                dca_v0_daughters=abs(rng.gauss(0.0, 0.2)),
                v0_cos_pa=1.0 - abs(rng.gauss(0.0, 0.002)),
                v0_radius=math.hypot(vtx[0] - collision.pos_x, vtx[1] - collision.pos_y),
                m_k0short=rng.gauss(MASS_K0S, 0.004),
                x=vtx[0],
                y=vtx[1],
                z=vtx[2],
            )
        )
    return EventInput(collision=collision, tracks=tuple(tracks), v0s=tuple(v0s))


def dump_events_json(path: str | Path, events: list[EventInput]) -> None:
    """Write events in the `{"events": [...]}` layout read by `load_events_json`."""
    payload = {
        "events": [
            {
                "collision": asdict(e.collision),
                "tracks": [asdict(t) for t in e.tracks],
                "v0s": [asdict(v) for v in e.v0s],
            }
            for e in events
        ]
    }
    Path(path).write_text(json.dumps(payload), encoding="utf-8")
    print(f"Wrote {len(events)} events to {path}")


def main() -> int:
    """Generate events, combine, and summarise the K* peak region."""
    args = parse_args()
    rng = Random(args.seed)
    events = [
        generate_event(rng, i + 1, rng.random() < args.signal_fraction)
        for i in range(args.n_events)
    ]
    if args.out_events:
        dump_events_json(args.out_events, events)

    combiner = ResonanceCombiner()
    same = combiner.combine_events(events)
    mixed = combiner.combine_mixed(events)

    window = (MASS_KSTAR - 2 * WIDTH_KSTAR, MASS_KSTAR + 2 * WIDTH_KSTAR)
    n_same_peak = sum(1 for p in same if window[0] < p.mass < window[1])
    n_mixed_peak = sum(1 for p in mixed if window[0] < p.mass < window[1])
    print(f"Peak window: {window[0]:.3f}-{window[1]:.3f} GeV/c^2")
    print(f"Same-event candidates:  {len(same)} ({n_same_peak} in peak window)")
    print(f"Mixed-event candidates: {len(mixed)} ({n_mixed_peak} in peak window)")

    write_histograms_table(args.out_spectra, combiner.histograms)
    print(f"Wrote spectra to {args.out_spectra}")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
