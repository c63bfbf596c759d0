"""
IHHT: adaptive instruction engine for intermittent hypoxic-hyperoxic training.

Watches a pulse oximeter stream during altitude (hypoxic) and recovery
(hyperoxic) phases, advises mask lifts, recommends altitude dial changes
between cycles and rolls readings up into phase, cycle and session metrics.
"""

from ihht.engine.phases import ProtocolConfig
from ihht.engine.session import TrainingSession
from ihht.models.readings import Reading

__all__ = ["ProtocolConfig", "Reading", "TrainingSession"]
