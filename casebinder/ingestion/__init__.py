"""
Ingestion Package

Bounded, fault-isolated processing of uploaded evidence files into
completion events.
"""

from .pipeline import IngestionPipeline, PipelineReport

__all__ = ['IngestionPipeline', 'PipelineReport']
