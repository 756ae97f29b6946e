"""Canonical deal model -- the schema every ingestion path produces.

Provides the immutable Deal record, the Rep record, stage/territory/type
enums, and the enumerated category tables used by normalization.
"""
