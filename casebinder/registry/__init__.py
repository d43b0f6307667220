"""
Registry Package

The DocumentRegistry and the CaseState reducer that is its only writer.
"""

from .case_state import STOP, CaseState
from .document_registry import DocumentRegistry

__all__ = ['CaseState', 'DocumentRegistry', 'STOP']
