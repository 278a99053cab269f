"""Kinematics helpers for femtoscopic pair and triplet observables."""

from __future__ import annotations

import math
from typing import Union

from .models import LorentzVector, McParticle, Particle

KinematicRecord = Union[Particle, McParticle]


def particle_to_lorentz(part: KinematicRecord, mass: float) -> LorentzVector:
    """Convert a (pT, eta, phi) record plus mass hypothesis into a Lorentz 4-vector."""
    px = part.pt * math.cos(part.phi)
    py = part.pt * math.sin(part.phi)
    pz = part.pt * math.sinh(part.eta)
    p2 = px * px + py * py + pz * pz
    energy = (p2 + mass * mass) ** 0.5
    return LorentzVector(px=px, py=py, pz=pz, e=energy)


def pair_relative_momentum(
    part1: KinematicRecord,
    mass1: float,
    part2: KinematicRecord,
    mass2: float,
) -> float:
    """Return k*, half the relative momentum of the pair in its rest frame."""
    vec1 = particle_to_lorentz(part1, mass1)
    vec2 = particle_to_lorentz(part2, mass2)
    bx, by, bz = (vec1 + vec2).beta_vector
    rel = vec1.boost(-bx, -by, -bz) - vec2.boost(-bx, -by, -bz)
    return 0.5 * rel.p2**0.5


def reduced_relative_momentum(vec_i: LorentzVector, vec_j: LorentzVector) -> LorentzVector:
    """Return q_ij, the relative 4-momentum projected orthogonal to the pair sum."""
    total = vec_i + vec_j
    diff = vec_i - vec_j
    norm = total.dot(total)
    if norm == 0.0:
        return diff
    return diff - total.scale(diff.dot(total) / norm)


def triple_relative_momentum(
    part1: KinematicRecord,
    mass1: float,
    part2: KinematicRecord,
    mass2: float,
    part3: KinematicRecord,
    mass3: float,
) -> float:
    """Return Q3 = sqrt(-(q12^2 + q23^2 + q31^2)) for one triplet.

    Each q_ij is space-like, so the sum is non-positive up to rounding; the
    result is clamped at zero.
    """
    vec1 = particle_to_lorentz(part1, mass1)
    vec2 = particle_to_lorentz(part2, mass2)
    vec3 = particle_to_lorentz(part3, mass3)
    q12 = reduced_relative_momentum(vec1, vec2)
    q23 = reduced_relative_momentum(vec2, vec3)
    q31 = reduced_relative_momentum(vec3, vec1)
    q3_squared = q12.dot(q12) + q23.dot(q23) + q31.dot(q31)
    return math.sqrt(max(0.0, -q3_squared))


def sorted_pair_momenta(
    part1: KinematicRecord,
    mass1: float,
    part2: KinematicRecord,
    mass2: float,
    part3: KinematicRecord,
    mass3: float,
) -> tuple[float, float, float]:
    """Return the three pairwise k* of a triplet in ascending order."""
    k12 = pair_relative_momentum(part1, mass1, part2, mass2)
    k13 = pair_relative_momentum(part1, mass1, part3, mass3)
    k23 = pair_relative_momentum(part2, mass2, part3, mass3)
    smallest, middle, largest = sorted((k12, k13, k23))
    return smallest, middle, largest


def wrap_phi(dphi: float) -> float:
    """Map an azimuthal difference into [-pi, pi)."""
    return (dphi + math.pi) % (2.0 * math.pi) - math.pi
