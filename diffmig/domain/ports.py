"""Domain Ports - Abstract Contracts for Snapshot Loading.

This module defines the Port interfaces (abstract contracts) that loader
Adapters must implement, together with the error taxonomy and the Result
type shared between the domain and its adapters.

Security Impact:
    - Loaders must reject malformed archives instead of yielding partial data
    - Error messages name the failing source but never include record content

Architecture:
    - Pure abstract interfaces with zero infrastructure dependencies
    - Adapters (zip archives, fixture files, etc.) implement these ports
    - Domain Core is isolated from archive format specifics
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Generic, Optional, TypeVar, Union

from diffmig.domain.records import RecordSet

# Type variable for Result generic
T = TypeVar('T')


# ============================================================================
# Result Type for Success/Failure Communication
# ============================================================================

@dataclass(frozen=True)
class Result(Generic[T]):
    """Result type for communicating success or failure without exceptions.

    Attributes:
        success: True if the operation succeeded, False otherwise
        value: The successful result value (only present if success=True)
        error: Error information (only present if success=False)
        error_type: Type of error (LoadError, ScopeError, etc.)
        error_details: Additional error context (source, member, etc.)

    Example:
        ```python
        result = loader.try_load("old.zip")
        if result.is_success():
            records = result.value
        else:
            log_error(result.error, result.error_details)
        ```
    """

    success: bool
    value: Optional[T] = None
    error: Optional[str] = None
    error_type: Optional[str] = None
    error_details: Optional[dict] = None

    @classmethod
    def success_result(cls, value: T) -> 'Result[T]':
        """Create a successful result."""
        return cls(success=True, value=value)

    @classmethod
    def failure_result(
        cls,
        error: Union[str, Exception],
        error_type: Optional[str] = None,
        error_details: Optional[dict] = None
    ) -> 'Result[T]':
        """Create a failure result.

        Parameters:
            error: Error message or exception
            error_type: Type of error (defaults to the exception class name)
            error_details: Additional context

        Returns:
            Result: Failure result with error information
        """
        error_message = str(error) if isinstance(error, Exception) else error
        error_type_name = error_type or (type(error).__name__ if isinstance(error, Exception) else "UnknownError")

        return cls(
            success=False,
            value=None,
            error=error_message,
            error_type=error_type_name,
            error_details=error_details or {}
        )

    def is_success(self) -> bool:
        """Check if result is successful."""
        return self.success

    def is_failure(self) -> bool:
        """Check if result is a failure."""
        return not self.success


# ============================================================================
# Custom Exception Hierarchy
# ============================================================================

class DiffMigError(Exception):
    """Base exception for all fatal diff errors."""
    pass


class LoadError(DiffMigError):
    """Raised when a snapshot archive is missing, unreadable, or malformed.

    Fatal: aborts the run before any comparison.

    Attributes:
        source: Path of the archive that failed to load
        details: Additional context (archive member, entry index, etc.)
    """

    def __init__(self, message: str, source: Optional[str] = None, details: Optional[dict] = None):
        super().__init__(message)
        self.source = source
        self.details = details or {}

    def __str__(self) -> str:
        message = super().__str__()
        if self.source and self.source not in message:
            return f"{message} ({self.source})"
        return message


class ScopeError(DiffMigError):
    """Raised when a scope selector is not recognized.

    Fatal: rejected before loading.

    Attributes:
        scope: The rejected selector
    """

    def __init__(self, message: str, scope: Optional[str] = None):
        super().__init__(message)
        self.scope = scope


@dataclass(frozen=True)
class Snapshot:
    """A loaded snapshot and where it came from.

    Attributes:
        source: Archive path
        member: Location of the clinical data inside the archive
        records: Parsed records
    """

    source: str
    member: str
    records: RecordSet

    @property
    def registry(self) -> str:
        """Registry code (top-level directory of the archive member)."""
        return self.member.split("/")[0]


class RecordLoaderPort(ABC):
    """Abstract contract for snapshot loaders.

    A loader turns one archive into a fully materialized RecordSet. The
    diff engine never sees archive paths or formats.

    Example Usage:
        ```python
        loader = get_loader("old.zip")
        snapshot = loader.load_snapshot("old.zip")
        ```
    """

    @abstractmethod
    def load_snapshot(self, source: str) -> Snapshot:
        """Load a snapshot.

        Parameters:
            source: Archive path

        Returns:
            Snapshot: Every record in the snapshot, in archive order

        Raises:
            LoadError: If the archive is missing, unreadable or malformed
        """
        pass

    @abstractmethod
    def can_load(self, source: str) -> bool:
        """Check if this loader can handle the given source."""
        pass

    def load(self, source: str) -> RecordSet:
        """Load only the records of a snapshot."""
        return self.load_snapshot(source).records

    def try_load(self, source: str) -> Result[RecordSet]:
        """Load a snapshot, reporting failure as a Result instead of raising."""
        try:
            return Result.success_result(self.load(source))
        except LoadError as e:
            return Result.failure_result(e, error_details={"source": e.source, **e.details})
