"""Similarity binning and the rolling event pool used for event mixing."""

from __future__ import annotations

import logging
from collections import defaultdict, deque
from dataclasses import dataclass
from typing import Iterable, Iterator

from .activity import event_activity
from .models import ActivitySelection, CollisionRecord, EventInput, MixingConfig

logger = logging.getLogger(__name__)

BinKey = tuple[int, int]


@dataclass(frozen=True)
class SimilarityBinning:
    """Map a collision onto a 2D (vertex-z, activity) bin."""

    mixing: MixingConfig
    activity: ActivitySelection

    def coordinate(self, collision: CollisionRecord) -> float:
        """Second binning coordinate: activity estimator or PV contributors."""
        if self.mixing.bin_variable == "num_contrib":
            return float(collision.num_contrib)
        return event_activity(collision, self.activity)

    def bin_of(self, collision: CollisionRecord) -> BinKey | None:
        """Bin key, or `None` when either coordinate falls outside its axis."""
        iz = self.mixing.vertex_axis.index(collision.pos_z)
        if iz is None:
            return None
        axis = (
            self.mixing.num_contrib_axis
            if self.mixing.bin_variable == "num_contrib"
            else self.mixing.activity_axis
        )
        ia = axis.index(self.coordinate(collision))
        if ia is None:
            return None
        return iz, ia


class EventMixer:
    """Pair each event with the most recent events of its similarity bin.

    Each bin keeps a FIFO pool of at most `depth` events. An incoming event is
    paired with every pooled event (the pooled, earlier event comes first)
    and then pushed, evicting the oldest one when the pool is full.
    """

    def __init__(self, binning: SimilarityBinning, depth: int) -> None:
        if depth <= 0:
            raise ValueError(f"Mixing depth must be positive, got {depth}")
        self.binning = binning
        self.depth = depth

    def iter_pairs(self, events: Iterable[EventInput]) -> Iterator[tuple[EventInput, EventInput]]:
        pools: dict[BinKey, deque[EventInput]] = defaultdict(lambda: deque(maxlen=self.depth))
        n_outside = 0
        for event in events:
            key = self.binning.bin_of(event.collision)
            if key is None:
                n_outside += 1
                continue
            pool = pools[key]
            for earlier in pool:
                if earlier.collision_id == event.collision_id:
                    continue
                yield earlier, event
            pool.append(event)
        if n_outside:
            logger.debug("%d events outside the mixing axes were not pooled", n_outside)
