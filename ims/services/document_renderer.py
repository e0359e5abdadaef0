# type: ignore
# pyright: reportMissingImports=false, reportGeneralTypeErrors=false
"""
Document rendering seam.

The exporter assembles a format-neutral ``Document`` (title, metadata lines,
headed sections of text lines); a ``DocumentRenderer`` turns it into bytes.
The built-in renderer emits plain UTF-8 text. Binary formats plug in by
subclassing ``DocumentRenderer``.
"""
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import List


@dataclass
class Section:
    heading: str
    lines: List[str] = field(default_factory=list)


@dataclass
class Document:
    title: str
    subtitle: List[str] = field(default_factory=list)
    sections: List[Section] = field(default_factory=list)

    def add(self, heading: str, lines: List[str]) -> Section:
        section = Section(heading=heading, lines=list(lines) or ["-"])
        self.sections.append(section)
        return section


class DocumentRenderer(ABC):
    @property
    @abstractmethod
    def content_type(self) -> str:
        ...

    @property
    @abstractmethod
    def file_extension(self) -> str:
        ...

    @abstractmethod
    def render(self, document: Document) -> bytes:
        ...


class TextDocumentRenderer(DocumentRenderer):
    @property
    def content_type(self) -> str:
        return "text/plain; charset=utf-8"

    @property
    def file_extension(self) -> str:
        return ".txt"

    def render(self, document: Document) -> bytes:
        out = [document.title, "=" * len(document.title)]
        out.extend(document.subtitle)
        for section in document.sections:
            out.append("")
            out.append(section.heading)
            out.append("-" * len(section.heading))
            out.extend(section.lines)
        return ("\n".join(out) + "\n").encode("utf-8")
