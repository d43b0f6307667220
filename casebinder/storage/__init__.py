"""
Storage Package

JSON persistence of case snapshots.
"""

from .case_store import CaseSnapshot, CaseStore

__all__ = ['CaseSnapshot', 'CaseStore']
