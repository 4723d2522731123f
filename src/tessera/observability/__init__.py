"""Observability module for Tessera.

Structured logging with request, tenant and job correlation IDs.
"""

from tessera.observability.logging import (
    ConsoleFormatter,
    JsonFormatter,
    configure_logging,
    job_id_var,
    request_id_var,
    tenant_id_var,
)

__all__ = [
    "configure_logging",
    "JsonFormatter",
    "ConsoleFormatter",
    "request_id_var",
    "tenant_id_var",
    "job_id_var",
]
