"""
Bundle Package

Two-pass compilation of case documents into one indexed, Bates-stamped
binder PDF.
"""

from .compiler import BinderResult, BundleCompiler
from .layout import (
    EntryKind,
    IndexEntry,
    assign_start_pages,
    compute_index_page_count,
    scale_to_fit,
    wrap_text,
)
from .ordering import BinderPlan, CompileItem, build_compile_order, plan_binder

__all__ = [
    'BinderPlan',
    'BinderResult',
    'BundleCompiler',
    'CompileItem',
    'EntryKind',
    'IndexEntry',
    'assign_start_pages',
    'build_compile_order',
    'compute_index_page_count',
    'plan_binder',
    'scale_to_fit',
    'wrap_text',
]
