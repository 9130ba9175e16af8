from __future__ import annotations

from typing import Dict, Optional, Type

from .builder_adult import AdultRecordBuilder
from .builder_base import RecordBuilder
from .builder_chemo import ChemoRecordBuilder
from .builder_neonatal import NeonatalRecordBuilder
from .canonicalize import CanonicalizeOptions
from .compiler import RichTextCompiler
from .convert import DeltaConverter
from .models import RecordDefaults

BUILDER_REGISTRY: Dict[str, Type[RecordBuilder]] = {
    "adult": AdultRecordBuilder,
    "neonatal": NeonatalRecordBuilder,
    "chemo": ChemoRecordBuilder,
}


def get_builder(
    name: str,
    compiler: Optional[RichTextCompiler] = None,
    options: Optional[CanonicalizeOptions] = None,
    defaults: Optional[RecordDefaults] = None,
) -> RecordBuilder:
    """Instantiate the builder for a source, wiring in its own converter."""

    try:
        builder_cls = BUILDER_REGISTRY[name.lower()]
    except KeyError as exc:
        raise ValueError(f"Unknown builder {name!r}; expected one of {sorted(BUILDER_REGISTRY)}") from exc
    converter = DeltaConverter(compiler=compiler, options=options or builder_cls.default_canonicalize)
    return builder_cls(converter, defaults=defaults)
