"""
Layout definitions sub-package for consar-ingest.

Contains YAML files that define fixed-width field tables for each
supported CONSAR file kind. The loader module (layout_registry.py in the
parent package) reads these files at runtime.
"""
