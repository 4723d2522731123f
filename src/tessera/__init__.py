"""Tessera: multi-database tenant resolution and provisioning.

Resolves tenants from request subdomains, switches the database connection
to the tenant's own database for the duration of a request or job, and
provisions tenant databases (create, migrate, seed, delete) through an
event-driven state machine.
"""

__version__ = "0.1.0"
