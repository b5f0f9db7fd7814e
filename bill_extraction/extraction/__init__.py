"""
Extraction Module for the Bill Extraction System.

The multi-strategy orchestrator, its strategies and the records they
produce.
"""

from .extraction_result import (
    SourceKind,
    Source,
    ExtractionContext,
    BillRecord,
    ExtractionResult,
)
from .strategies import (
    StrategyResult,
    ExtractionStrategy,
    StemPositionalStrategy,
    PatternStrategy,
    RawRegexStrategy,
)
from .orchestrator import OrchestratorState, ExtractionOrchestrator, build_orchestrator

__all__ = [
    'SourceKind',
    'Source',
    'ExtractionContext',
    'BillRecord',
    'ExtractionResult',
    'StrategyResult',
    'ExtractionStrategy',
    'StemPositionalStrategy',
    'PatternStrategy',
    'RawRegexStrategy',
    'OrchestratorState',
    'ExtractionOrchestrator',
    'build_orchestrator',
]
