"""Example custom callback: normalised SE/ME ratio of the Q3 distributions."""

from __future__ import annotations

import json
from pathlib import Path


def process(registry, context):
    """Write the same-over-mixed Q3 ratio, normalised in a high-Q3 window."""
    same = registry.get("SameEvent/relTripletDist")
    mixed = registry.get("MixedEvent/relTripletDist")
    centers = same.axes[0].centers
    se_values = same.values()
    me_values = mixed.values()

    norm_mask = (centers > 1.0) & (centers < 3.0)
    se_norm = float(se_values[norm_mask].sum())
    me_norm = float(me_values[norm_mask].sum())
    scale = me_norm / se_norm if se_norm > 0.0 else 1.0

    points = []
    for center, se, me in zip(centers, se_values, me_values):
        if me <= 0.0:
            continue
        points.append({"q3": float(center), "cf": float(scale * se / me)})

    payload = {
        "n_same_event_triplets": context["n_same_event_triplets"],
        "n_mixed_event_triplets": context["n_mixed_event_triplets"],
        "correlation": points,
    }
    out = Path(context["output_path"]).with_name("correlation_summary.json")
    out.write_text(json.dumps(payload, indent=2), encoding="utf-8")
    print(f"Wrote {out}")
