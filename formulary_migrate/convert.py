"""
Glue between the three document stages.

Record builders only ever talk to :class:`DeltaConverter`; it owns the
canonicalisation options of the source, the compiler instance and the
placeholder documents stored when a field is empty or cannot be compiled.
"""

from __future__ import annotations

import logging
from typing import Optional

from .canonicalize import CanonicalizeOptions, canonicalize
from .compiler import CompilationError, RichTextCompiler
from .delta import Delta, error_document, missing_document, postprocess

LOGGER = logging.getLogger(__name__)


class DeltaConverter:
    def __init__(
        self,
        compiler: Optional[RichTextCompiler] = None,
        options: Optional[CanonicalizeOptions] = None,
    ) -> None:
        self.compiler = compiler or RichTextCompiler()
        self.options = options or CanonicalizeOptions()

    def convert(self, raw_html: str, image_hash: Optional[str] = None) -> Delta:
        """Canonicalise, compile and post-process one HTML fragment. Raises CompilationError."""

        canonical = canonicalize(raw_html, self.options)
        compiled = self.compiler.compile(canonical)
        return postprocess(compiled, image_hash=image_hash)

    def convert_field(self, raw_html: Optional[str], label: str, image_hash: Optional[str] = None) -> str:
        """Serialized document for a record column; never raises on bad HTML."""

        if not isinstance(raw_html, str) or not raw_html.strip():
            return missing_document(label)
        try:
            return self.convert(raw_html, image_hash=image_hash).to_json()
        except CompilationError as exc:
            LOGGER.error("Error converting %s HTML: %s", label, exc)
            return error_document(label)
