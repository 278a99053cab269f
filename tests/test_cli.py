"""Unit tests for the command-line entry point and custom-script hook."""

from __future__ import annotations

import json
import tempfile
import unittest
from pathlib import Path

import pandas as pd

from femtotriplet import TripletTaskConfig
from femtotriplet.cli import apply_overrides, build_parser, main

CUT_BITS = 5542474
PID_BITS = 24

CUSTOM_SCRIPT = '''
import json
from pathlib import Path


def process(registry, context):
    out = Path(context["output_path"]).with_name("hook.json")
    payload = {
        "same": registry.entries("SameEvent/relTripletDist"),
        "n_same": context["n_same_event_triplets"],
    }
    out.write_text(json.dumps(payload), encoding="utf-8")
'''


def _events_payload() -> dict:
    """One collision holding three well separated protons."""
    particles = [
        {"collision_id": 0, "index": i, "pt": 1.0, "eta": eta, "phi": phi, "cut": CUT_BITS, "pid_cut": PID_BITS}
        for i, (eta, phi) in enumerate([(0.0, 0.0), (0.1, 0.0), (0.0, 0.1)])
    ]
    return {
        "collisions": [{"collision_id": 0, "pos_z": 0.0, "mult_ntr": 30, "mult_v0m": 20.0, "mag_field": 0.5}],
        "particles": particles,
    }


class TestCli(unittest.TestCase):
    """Validate argument handling and the end-to-end CLI run."""

    def test_overrides_update_config(self) -> None:
        """Command-line switches override the loaded configuration."""
        args = build_parser().parse_args(["--events", "e.json", "--out", "o.csv", "--no-cpr", "--n-events-mix", "3"])
        config = apply_overrides(TripletTaskConfig(), args)
        self.assertFalse(config.close_pair.enabled)
        self.assertEqual(config.mixing.n_events_mix, 3)

    def test_invalid_override_is_rejected(self) -> None:
        """Overrides are validated like loaded configurations."""
        args = build_parser().parse_args(["--events", "e.json", "--out", "o.csv", "--n-events-mix", "1"])
        with self.assertRaises(ValueError):
            apply_overrides(TripletTaskConfig(), args)

    def test_main_writes_table_and_runs_hook(self) -> None:
        """The CLI writes the histogram table and passes results to the hook."""
        with tempfile.TemporaryDirectory() as tmpdir:
            events = Path(tmpdir) / "events.json"
            events.write_text(json.dumps(_events_payload()), encoding="utf-8")
            script = Path(tmpdir) / "hook_script.py"
            script.write_text(CUSTOM_SCRIPT, encoding="utf-8")
            out = Path(tmpdir) / "hists.csv"

            code = main(["--events", str(events), "--out", str(out), "--custom-script", str(script)])

            self.assertEqual(code, 0)
            df = pd.read_csv(out)
            same = df[df["histogram"] == "SameEvent/relTripletDist"]
            self.assertEqual(float(same["value"].sum()), 1.0)
            hook = json.loads((Path(tmpdir) / "hook.json").read_text(encoding="utf-8"))
            self.assertEqual(hook["same"], 1.0)
            self.assertEqual(hook["n_same"], 1)

    def test_hook_without_process_is_rejected(self) -> None:
        """A custom script must define a callable process()."""
        with tempfile.TemporaryDirectory() as tmpdir:
            events = Path(tmpdir) / "events.json"
            events.write_text(json.dumps(_events_payload()), encoding="utf-8")
            script = Path(tmpdir) / "empty_script.py"
            script.write_text("VALUE = 1\n", encoding="utf-8")
            with self.assertRaises(ValueError):
                main(["--events", str(events), "--out", str(Path(tmpdir) / "h.csv"), "--custom-script", str(script)])

    def test_missing_inputs_exit(self) -> None:
        """Without event inputs the parser exits with an error."""
        with self.assertRaises(SystemExit):
            main(["--out", "o.csv"])


if __name__ == "__main__":
    unittest.main()
