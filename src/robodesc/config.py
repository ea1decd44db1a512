"""Decoder configuration."""

from dataclasses import dataclass


@dataclass(frozen=True)
class ParserConfig:
    """Options shared by the decoders and encoders.

    Attributes:
        max_depth: Deepest body/prim/element nesting a recursive walk will
            follow, also applied to bracketed USDA values and xacro
            expressions. Subtrees below it are dropped with a warning.
        max_expansions: Total xacro macro calls expanded per document.
    """
    max_depth: int = 128
    max_expansions: int = 10000


DEFAULT_CONFIG = ParserConfig()
