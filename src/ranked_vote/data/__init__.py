from .database import BallotDatabase
from .normalizer import BallotNormalizer, NormalizedCache, compute_fingerprint, prepare_election

__all__ = [
    "BallotDatabase",
    "BallotNormalizer",
    "NormalizedCache",
    "compute_fingerprint",
    "prepare_election",
]
