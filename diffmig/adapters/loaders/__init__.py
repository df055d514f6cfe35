"""Snapshot loaders for diffmig.

This module contains loader adapters that implement the RecordLoaderPort
interface for reading registry snapshots into RecordSets.
"""

from pathlib import Path

from diffmig.adapters.loaders.registry_archive_loader import RegistryArchiveLoader
from diffmig.domain.ports import LoadError, RecordLoaderPort, Snapshot

__all__ = ["RegistryArchiveLoader", "Snapshot", "get_loader"]


def get_loader(source: str, **kwargs) -> RecordLoaderPort:
    """Factory function to get the appropriate loader for a snapshot source.

    Parameters:
        source: Source identifier (archive path)
        **kwargs: Additional arguments passed to the loader constructor

    Returns:
        RecordLoaderPort: Loader instance for the source

    Raises:
        LoadError: If no loader can handle the source
    """
    loaders = [
        ("zip", RegistryArchiveLoader),
    ]

    extension = Path(source).suffix.lower()
    for ext, loader_class in loaders:
        if extension == f".{ext}":
            return loader_class(**kwargs)

    raise LoadError(
        f"No loader found for source: {source}. Supported formats: ZIP",
        source=source
    )
