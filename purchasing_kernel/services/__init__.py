"""Kernel services - infrastructure shared by the purchasing modules."""

from purchasing_kernel.services.sequence_service import (
    InMemorySequenceService,
    SequenceAllocator,
    SequenceCounter,
    SequenceService,
)

__all__ = [
    "InMemorySequenceService",
    "SequenceAllocator",
    "SequenceCounter",
    "SequenceService",
]
