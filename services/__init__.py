"""Caller-side services around the dispatcher."""

from services.training_sample_service import TrainingSampleService

__all__ = [
    "TrainingSampleService",
]
