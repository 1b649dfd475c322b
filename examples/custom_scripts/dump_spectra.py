"""Example custom callback: project spectra on mass and write a JSON summary."""

from __future__ import annotations

import json
from pathlib import Path


def process(histograms, context):
    """Integrate activity and pt, then store same/mixed mass projections."""
    payload = {"mode": context["mode"], "n_candidates": len(context["pairs"])}
    for name in ("same_event", "mixed_event"):
        projection = histograms[name].project("mass")
        payload[name] = {
            "mass_centers": projection.axes[0].centers.tolist(),
            "counts": projection.values().tolist(),
        }
    out = Path(context["output_path"]).with_name("mass_projections.json")
    out.write_text(json.dumps(payload, indent=2), encoding="utf-8")
    print(f"Wrote {out}")
