"""PDG-code mass lookup used to build four-vectors of the analysed species.

Only the species relevant for femtoscopic triplets are listed; masses in GeV/c^2.
"""

from __future__ import annotations

_PDG_MASSES: dict[int, float] = {
    211: 0.13957039,  # pi+
    321: 0.493677,  # K+
    2212: 0.93827208816,  # p
    1000010020: 1.87561294257,  # d
    3122: 1.115683,  # Lambda
    3312: 1.32171,  # Xi-
    3334: 1.67245,  # Omega-
    11: 0.00051099895,  # e-
    13: 0.1056583755,  # mu-
}

_NAME_TO_PDG: dict[str, int] = {
    "pi": 211,
    "pion": 211,
    "k": 321,
    "kaon": 321,
    "p": 2212,
    "proton": 2212,
    "d": 1000010020,
    "deuteron": 1000010020,
    "lambda": 3122,
    "xi": 3312,
    "omega": 3334,
    "e": 11,
    "electron": 11,
    "mu": 13,
    "muon": 13,
}


def mass_from_pdg(pdg_code: int) -> float:
    """Return the mass of a species; antiparticles share the particle mass."""
    try:
        return _PDG_MASSES[abs(int(pdg_code))]
    except KeyError as exc:
        supported = ", ".join(str(code) for code in sorted(_PDG_MASSES))
        raise ValueError(
            f"Unknown PDG code {pdg_code}. Supported codes: {supported}"
        ) from exc


def pdg_code_from_name(name: str) -> int:
    """Resolve a short particle name (e.g. `p`, `kaon`) into a PDG code."""
    key = name.strip().lower()
    try:
        return _NAME_TO_PDG[key]
    except KeyError as exc:
        supported = ", ".join(sorted(_NAME_TO_PDG))
        raise ValueError(
            f"Unknown particle name '{name}'. Supported names: {supported}"
        ) from exc
