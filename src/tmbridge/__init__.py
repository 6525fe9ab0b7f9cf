"""
tmbridge: Traditional Medicine Terminology Bridge

Dual-coding engine that reconciles NAMASTE, Unani and ICD-11 codes through
ranked autocomplete, ConceptMap translation and dual-code lookup.
"""

__version__ = "0.1.0"
__author__ = "tmbridge Team"
