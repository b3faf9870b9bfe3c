"""Tracker Core - hierarchical authorization and archive lifecycle.

Modules:
- role_resolver: effective permission of a user on a resource
- role_promoter: membership-derived system role labels
- lifecycle: archive / unarchive with cascading propagation
- permissions: authorization facade for the CRUD and API layers
- memberships: membership add/remove with role recomputation
"""

__version__ = "1.0.0"
