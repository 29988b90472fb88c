from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path

from coursecraft.models.section import ParsedNode


SEQUENCE_SENTINEL = 999_999


@dataclass(slots=True)
class TOCBuilderConfig:
    """Configuration for parsing course documents into ParsedNode trees."""

    sequence_sentinel: int = SEQUENCE_SENTINEL
    encoding: str = "utf-8"


class TOCBuilder(ABC):
    """Abstract base class for turning course documents into ParsedNode trees."""

    def __init__(self, config: TOCBuilderConfig | None = None) -> None:
        self.config = config or TOCBuilderConfig()

    @abstractmethod
    def build(self, document_path: Path) -> ParsedNode:
        """Parse a single document and return its COURSE root."""


__all__ = ["SEQUENCE_SENTINEL", "TOCBuilder", "TOCBuilderConfig"]
