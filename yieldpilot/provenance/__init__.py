"""
Provenance Package

Publishes strategy documents to content-addressed storage and anchors
their location on-chain.
"""

from .anchor import ReferenceAnchor
from .publisher import PinataPublisher, PublishError, canonical_json

__all__ = [
    "PinataPublisher",
    "PublishError",
    "ReferenceAnchor",
    "canonical_json",
]
