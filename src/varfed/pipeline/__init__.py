"""Federated query pipeline: sources, then liftover, then annotation.

Components:
- Orchestrator: Main coordinator
"""

from varfed.pipeline.orchestrator import GENERIC_ERROR_MESSAGE, Orchestrator

__all__ = ["GENERIC_ERROR_MESSAGE", "Orchestrator"]
