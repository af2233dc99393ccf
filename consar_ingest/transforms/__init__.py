"""
Transforms sub-package for consar-ingest.

Projects a ParseResult into pandas DataFrames for export. The parsing
core never depends on this package; it only returns typed records.

Design: Pipeline Pattern
- pipeline.py orchestrates the sequence of transforms.
- Individual transforms are in separate modules for testability:
  - splitter.py: Group detail records by record type code.
  - frames.py: Turn records, errors, warnings and structural findings
    into DataFrames.
"""
