"""diffmig: compare two migrated registry snapshots."""

__version__ = "0.1.0"
