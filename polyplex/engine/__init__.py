"""Generation engine -- pipeline, output decoding and the quality gate.

Public API::

    from polyplex.engine import (
        GateCheck,
        GateReport,
        PipelineEngine,
        QualityGate,
    )
"""

from polyplex.engine.pipeline import PipelineEngine
from polyplex.engine.qa import GateCheck, GateReport, QualityGate

__all__ = [
    "GateCheck",
    "GateReport",
    "PipelineEngine",
    "QualityGate",
]
