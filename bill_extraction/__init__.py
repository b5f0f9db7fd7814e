"""
Bill Extraction System - Source Package.

Extracts structured bill data (amount, due date, vendor, invoice and
account numbers) from email bodies and PDF text in English and
Hungarian.

Modules:
    - input_handler: Chunk reassembly, document decoding, raw byte scanning
    - language: Normalization, stemming and locale parsing per language
    - patterns: Declarative bill patterns and their registry
    - matching: Rule, positional and confidence machinery
    - postprocessor: Typed conversion and validation of field values
    - extraction: Multi-strategy orchestrator
    - protocol: Message channels and the document handler

Architecture:
    Chunks -> Decoder -> Language -> Strategies -> Post-Processing -> Result
"""

__version__ = "1.0.0"
__author__ = "ML Engineering Team"

__all__ = [
    'input_handler',
    'language',
    'patterns',
    'matching',
    'postprocessor',
    'extraction',
    'protocol',
    'utils'
]
