"""
Repository layer for data access operations.

This package contains repository modules that encapsulate database queries
and business logic for different domain entities.
"""
