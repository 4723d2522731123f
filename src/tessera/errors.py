"""Exception hierarchy for Tessera.

Resolution outcomes (reserved subdomain, unknown tenant, central host) are
values returned by the resolver, not exceptions. Exceptions here cover
operator mistakes, configuration problems and failed provisioning steps.
"""

from __future__ import annotations


class TenancyError(Exception):
    """Base class for all tenancy errors."""


class TenantNotFoundError(TenancyError):
    """Raised when a tenant cannot be found by id or slug."""

    def __init__(self, identifier: str) -> None:
        super().__init__(f"Tenant '{identifier}' not found.")
        self.identifier = identifier


class TenantAlreadyExistsError(TenancyError):
    """Raised when creating a tenant whose slug is taken."""

    def __init__(self, slug: str) -> None:
        super().__init__(f"A tenant with slug '{slug}' already exists.")
        self.slug = slug


class UnsupportedDriverError(TenancyError):
    """Raised when the central connection uses a backend we cannot provision."""

    def __init__(self, backend: str) -> None:
        super().__init__(f"Unsupported database driver: {backend}")
        self.backend = backend


class InvalidDatabaseNameError(TenancyError):
    """Raised when a tenant database name is not a safe identifier."""

    def __init__(self, name: str) -> None:
        super().__init__(f"Invalid tenant database name: {name!r}")
        self.name = name


class SeederNotFoundError(TenancyError):
    """Raised when a seeder identifier cannot be imported."""

    def __init__(self, identifier: str, reason: str | None = None) -> None:
        message = f"Seeder '{identifier}' could not be resolved"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message)
        self.identifier = identifier


class ProvisioningError(TenancyError):
    """A provisioning step reported failure without raising.

    Carried as the error of *Failed events when the manager returned False or a
    non-zero exit code.
    """

    def __init__(self, step: str, message: str, exit_code: int | None = None) -> None:
        super().__init__(message)
        self.step = step
        self.exit_code = exit_code
