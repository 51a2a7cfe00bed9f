"""Core data models for usage-point analysis."""

from .models import (
    MAIN_THREAD,
    AccessKind,
    ThreadRelation,
    ThreadStateSet,
    ConcreteLock,
    AliasedLock,
    Lock,
    LockSet,
    make_lock,
    CodeLocation,
    UsagePoint,
    RaceCandidate,
)

__all__ = [
    'MAIN_THREAD',
    'AccessKind',
    'ThreadRelation',
    'ThreadStateSet',
    'ConcreteLock',
    'AliasedLock',
    'Lock',
    'LockSet',
    'make_lock',
    'CodeLocation',
    'UsagePoint',
    'RaceCandidate',
]
