"""
Domain models — Pydantic types for the bootstrap layer.

All models are re-exported here for convenient access:

    from plugboot.core.models import Module, OnInit, CandidateCache, RemapRule
"""

from plugboot.core.models.activation import ActivationReceipt
from plugboot.core.models.cache import CacheHeader, CandidateCache, CandidateRecord
from plugboot.core.models.config import BootConfig
from plugboot.core.models.markers import Marker, OnInit, mark, markers_of, on_init
from plugboot.core.models.module import Module
from plugboot.core.models.remap import RemapRule, TargetOS

__all__ = [
    # activation.py
    "ActivationReceipt",
    "BootConfig",
    # cache.py
    "CacheHeader",
    "CandidateCache",
    "CandidateRecord",
    # markers.py
    "Marker",
    "Module",
    "OnInit",
    # remap.py
    "RemapRule",
    "TargetOS",
    "mark",
    "markers_of",
    "on_init",
]
