"""Histogram accumulator filled by the selectors and combiners.

Every histogram is a `hist.Hist` with regular axes. The accumulator is only
written to while processing; independent shards can be merged with `+=`.
"""

from __future__ import annotations

from typing import Any, Iterator

import hist
import numpy as np

from .activity import activity_estimator_name
from .models import AnalysisConfig


def _pair_hist(activity_label: str) -> hist.Hist:
    return hist.Hist(
        hist.axis.Regular(200, 0.0, 200.0, name="activity", label=activity_label),
        hist.axis.Regular(200, 0.0, 20.0, name="pt", label="p_T (GeV/c)"),
        hist.axis.Regular(90, 0.6, 1.5, name="mass", label="M_inv (GeV/c^2)"),
    )


def _hist1d(n_bins: int, low: float, high: float, name: str, label: str) -> hist.Hist:
    return hist.Hist(hist.axis.Regular(n_bins, low, high, name=name, label=label))


class HistogramAccumulator:
    """Named collection of histograms for one analysis configuration.

    Same-event, mixed-event, vertex-z and activity histograms always exist.
    Track QA (before/after selection) and V0 QA histograms are booked only
    when the corresponding `QAConfig` flag is enabled, and filling a missing
    QA histogram is a no-op.
    """

    def __init__(self, config: AnalysisConfig | None = None) -> None:
        self.config = config or AnalysisConfig()
        qa = self.config.qa
        activity_label = activity_estimator_name(self.config.activity)
        self._hists: dict[str, hist.Hist] = {
            "same_event": _pair_hist(activity_label),
            "mixed_event": _pair_hist(activity_label),
            "vertex_z": _hist1d(qa.n_bins, -10.0, 10.0, "vz", "vrtx_Z (cm)"),
            "activity": _hist1d(200, 0.0, 200.0, "activity", activity_label),
        }
        if qa.qa_before:
            self._hists["nsigma_tpc_before"] = _hist1d(200, -10.0, 10.0, "nsigma", "n#sigma_TPC(pi)")
            self._hists["nsigma_tof_before"] = _hist1d(200, -10.0, 10.0, "nsigma", "n#sigma_TOF(pi)")
        if qa.qa_after:
            self._hists["eta_after"] = _hist1d(200, -1.0, 1.0, "eta", "eta")
            self._hists["dca_xy_after"] = _hist1d(200, -10.0, 10.0, "dca", "DCA_xy (cm)")
            self._hists["dca_z_after"] = _hist1d(200, -10.0, 10.0, "dca", "DCA_z (cm)")
            self._hists["nsigma_tpc_after"] = _hist1d(200, -10.0, 10.0, "nsigma", "n#sigma_TPC(pi)")
            self._hists["nsigma_tof_after"] = _hist1d(200, -10.0, 10.0, "nsigma", "n#sigma_TOF(pi)")
        if qa.qa_v0:
            self._hists["v0_mass_pt_activity"] = hist.Hist(
                hist.axis.Regular(200, 0.45, 0.55, name="mass", label="M_inv (GeV/c^2)"),
                hist.axis.Regular(200, 0.0, 20.0, name="pt", label="p_T (GeV/c)"),
                hist.axis.Regular(100, 0.0, 100.0, name="activity", label=activity_label),
            )
            self._hists["v0_dca_daughters"] = _hist1d(50, 0.0, 5.0, "dca", "DCA V0 daughters (cm)")
            self._hists["v0_lifetime"] = _hist1d(100, 0.0, 50.0, "ctau", "c#tau (cm)")
            self._hists["v0_cos_pa"] = _hist1d(100, 0.95, 1.0, "cospa", "cos(PA)")

    def __contains__(self, name: str) -> bool:
        return name in self._hists

    def __getitem__(self, name: str) -> hist.Hist:
        return self._hists[name]

    def names(self) -> list[str]:
        return list(self._hists)

    def fill(self, name: str, *values: float) -> None:
        """Add one entry to histogram `name`; unbooked QA names are ignored."""
        h = self._hists.get(name)
        if h is None:
            return
        h.fill(*values)

    def fill_pair(self, mixed: bool, activity: float, pt: float, mass: float) -> None:
        """Add one candidate to the same-event or mixed-event spectrum."""
        self._hists["mixed_event" if mixed else "same_event"].fill(activity, pt, mass)

    def __iadd__(self, other: "HistogramAccumulator") -> "HistogramAccumulator":
        if set(self._hists) != set(other._hists):
            raise ValueError("Cannot merge accumulators booked with different QA settings.")
        for name, h in other._hists.items():
            self._hists[name] += h
        return self

    def entries(self, name: str) -> float:
        """Sum of weights in histogram `name`, including flow bins."""
        return float(self._hists[name].sum(flow=True))

    def iter_rows(self, names: list[str] | None = None) -> Iterator[dict[str, Any]]:
        """Yield one row per non-empty in-range bin, with bin centers per axis."""
        for name in names or self.names():
            h = self._hists[name]
            values = h.values()
            centers = [axis.centers for axis in h.axes]
            for idx in zip(*np.nonzero(values)):
                row: dict[str, Any] = {"histogram": name}
                for axis, axis_centers, i in zip(h.axes, centers, idx):
                    row[axis.name] = float(axis_centers[i])
                row["count"] = float(values[idx])
                yield row
