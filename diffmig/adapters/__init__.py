"""Adapters layer for diffmig.

This module contains input/output adapters that interface with external systems.
Adapters implement Port interfaces defined in the domain layer and translate
archive formats into domain models.
"""
