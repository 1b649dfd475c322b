"""Public package exports for the K*± resonance-combination framework."""

from .activity import event_activity
from .combiner import ResonanceCombiner
from .histograms import HistogramAccumulator
from .mixing import EventMixer, SimilarityBinning
from .models import (
    ActivitySelection,
    AnalysisConfig,
    AxisSpec,
    CollisionRecord,
    DaughterSelection,
    EventInput,
    EventSelection,
    KShortCandidate,
    LorentzVector,
    MixingConfig,
    PairCandidate,
    ParticleHypothesis,
    PidSelection,
    PionCandidate,
    QAConfig,
    TrackRecord,
    TrackSelection,
    V0Record,
    V0Selection,
)
from .pid import (
    is_pion_like,
    make_charged_kstar,
    make_kshort,
    make_pion,
    particle_hypothesis_from_name,
)
from .selection import (
    V0Selector,
    is_daughter_accepted,
    is_event_accepted,
    is_track_accepted,
    is_track_preselected,
)

__all__ = [
    "ResonanceCombiner",
    "HistogramAccumulator",
    "EventMixer",
    "SimilarityBinning",
    "CollisionRecord",
    "TrackRecord",
    "V0Record",
    "EventInput",
    "LorentzVector",
    "ParticleHypothesis",
    "PionCandidate",
    "KShortCandidate",
    "PairCandidate",
    "AnalysisConfig",
    "EventSelection",
    "TrackSelection",
    "PidSelection",
    "DaughterSelection",
    "V0Selection",
    "ActivitySelection",
    "MixingConfig",
    "AxisSpec",
    "QAConfig",
    "event_activity",
    "is_pion_like",
    "is_event_accepted",
    "is_track_preselected",
    "is_track_accepted",
    "is_daughter_accepted",
    "V0Selector",
    "make_pion",
    "make_kshort",
    "make_charged_kstar",
    "particle_hypothesis_from_name",
]
