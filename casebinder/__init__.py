"""
CaseBinder - evidence ingestion, case timeline and binder compilation.
"""

__version__ = "0.1.0"
