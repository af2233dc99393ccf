"""
Custom exception hierarchy for consar-ingest.

Why a custom hierarchy:
- Callers can catch specific exceptions (e.g., UnknownFileKindError vs
  StreamReadError) without relying on generic ValueError/OSError.
- Line-level and structural problems are NOT exceptions. They are
  reported as data (ParseResult.errors / StructuralReport findings).
  Only stream-level failures abort a parse.
"""

from __future__ import annotations


class ConsarIngestError(Exception):
    """Base exception for all consar-ingest errors."""


class UnknownFileKindError(ConsarIngestError):
    """Raised when a file cannot be mapped to a parseable file kind.

    This covers detection that ends in ``FileKind.UNKNOWN``, container
    files (.zip / .gpg) and metadata sidecars, and kinds for which the
    layout catalog holds no schema.
    """


class SchemaError(ConsarIngestError):
    """Raised when a layout YAML defines an inconsistent schema.

    For example, a derived rule that references a field the record
    does not declare, or an unknown rule keyword.
    """


class ParsingError(ConsarIngestError):
    """Raised when a parse cannot continue at the stream level."""


class StreamReadError(ParsingError):
    """Raised when the input stream cannot be read or decoded.

    Attributes:
        partial: The ParseResult accumulated up to the failing line, so
            callers can still report what was read.
    """

    def __init__(self, message: str, partial: object | None = None) -> None:
        super().__init__(message)
        self.partial = partial


class ParseCancelledError(ParsingError):
    """Raised when a caller-supplied cancel event is set mid-parse.

    Cancellation is cooperative: it is observed at the next line boundary.
    """

    def __init__(self, line_number: int) -> None:
        super().__init__(f"Parse cancelled at line {line_number}")
        self.line_number = line_number


class ConfigValidationError(ConsarIngestError):
    """Raised when an ingest config YAML fails validation.

    This can happen if:
    - The file is empty.
    - The configured file_kind has no layout in the catalog.
    - output_format is not a supported value.
    """


class ExportError(ConsarIngestError):
    """Raised when the exporter fails to write output files.

    For example, permission errors, disk full, or unsupported format.
    """
