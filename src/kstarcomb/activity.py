"""Event-activity estimator used for histogram axes and mixing bins."""

from __future__ import annotations

from .models import ActivitySelection, CollisionRecord


def event_activity(collision: CollisionRecord, selection: ActivitySelection) -> float:
    """Return the configured multiplicity or centrality of a collision.

    The FT0 multiplicity flag wins over the centrality choice, so exactly one
    estimator is used per configuration.
    """
    if selection.use_mult_ft0:
        return collision.mult_zeq_ft0a + collision.mult_zeq_ft0c
    if selection.use_cent_ft0c:
        return collision.cent_ft0c
    return collision.cent_ft0m


def activity_estimator_name(selection: ActivitySelection) -> str:
    """Short label of the estimator picked by `event_activity`."""
    if selection.use_mult_ft0:
        return "MultFT0"
    if selection.use_cent_ft0c:
        return "CentFT0C"
    return "CentFT0M"
