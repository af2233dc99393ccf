"""
Catalog data sub-package for consar-ingest.

Holds validators.yaml, the downstream validator catalog read by
validator_catalog.py in the parent package.
"""
