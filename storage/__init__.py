"""
Storage Package.

This package manages all data persistence of the traffic store.

Modules:
- models/: ORM models for raw records and derived statistics
- repositories/: Data access layer
"""
