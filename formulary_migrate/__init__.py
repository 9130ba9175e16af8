"""
Formulary spreadsheet migration: HTML canonicalisation, rich-text compilation,
delta post-processing, per-source record builders and persistence.
"""

from .canonicalize import CanonicalizeOptions, canonicalize  # noqa: F401
from .compiler import CompilationError, RichTextCompiler, html_to_document  # noqa: F401
from .delta import Delta, Operation, postprocess  # noqa: F401
from .image_hashes import IMAGE_HASHES, resolve_image_hash  # noqa: F401
from .convert import DeltaConverter  # noqa: F401

__all__ = [
    "CanonicalizeOptions",
    "canonicalize",
    "CompilationError",
    "RichTextCompiler",
    "html_to_document",
    "Delta",
    "Operation",
    "postprocess",
    "IMAGE_HASHES",
    "resolve_image_hash",
    "DeltaConverter",
]
