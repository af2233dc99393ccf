"""
Stream parsers for consar-ingest.

``parse()`` is the entry point: it picks the parser class for the file
kind's header style and runs it over the stream.
"""

from __future__ import annotations

import threading
from collections.abc import Iterable
from typing import IO, Any

from consar_ingest.config import ParserSettings
from consar_ingest.layout_registry import SchemaCatalog
from consar_ingest.models import FileKind
from consar_ingest.parsers.base import (
    BaseParser,
    ParseError,
    ParseResult,
    ParseWarning,
    ProgressSink,
)

__all__ = ["parse", "BaseParser", "ParseError", "ParseResult", "ParseWarning"]


def parse(
    stream: IO[Any] | Iterable[Any],
    file_kind: FileKind,
    progress: ProgressSink | None = None,
    cancel: threading.Event | None = None,
    *,
    settings: ParserSettings | None = None,
    catalog: SchemaCatalog | None = None,
    version: str | None = None,
) -> ParseResult:
    """Parse *stream* as *file_kind*.

    Raises:
        UnknownFileKindError: If the kind cannot be parsed.
        ParseCancelledError: If *cancel* was set during the parse.
        StreamReadError: If the stream could not be read.
    """
    from consar_ingest.detect import get_parser

    parser_cls = get_parser(file_kind, catalog=catalog)
    parser = parser_cls(file_kind, settings=settings, catalog=catalog, version=version)
    return parser.parse(stream, progress=progress, cancel=cancel)
