"""Reconciler and matching strategies."""

from .reconciler import Reconciler
from .strategies import (
    MatchingStrategy,
    ExternalReferenceStrategy,
    FingerprintStrategy,
)

__all__ = [
    "Reconciler",
    "MatchingStrategy",
    "ExternalReferenceStrategy",
    "FingerprintStrategy",
]
