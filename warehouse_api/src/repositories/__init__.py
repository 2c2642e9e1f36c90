"""
Data access for the warehouse domain.

Each repository wraps the SQLAlchemy queries of one area. Sessions handed to
them are expected to carry the tenant GUC already, so queries never filter on
tenant_id themselves; row-level security does it.
"""
