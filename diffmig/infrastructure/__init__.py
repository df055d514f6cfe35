"""Infrastructure layer for diffmig: configuration, logging and report output."""
