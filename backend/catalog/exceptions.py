"""
App Catalog Backend — Error Types
==================================

What:  The exceptions routes, the repository and the sync service raise.
How:   Every error carries `message` (safe to show to API clients) and
       `context` (logged, returned only for 4xx). main.py maps each class to
       an HTTP status; the sync pipeline catches RepositoryError per app.

    CatalogError
    ├── ValidationError       400  business rule broken (duplicate ID, bad query)
    ├── AuthenticationError   401  X-API-Key missing or unknown
    ├── AuthorizationError    403  key known, authority too low
    ├── NotFoundError         404
    ├── RepositoryError       500  apps table read/write failed
    └── CatalogFetchError     500  snapshot unreadable, sync run never started

Store lookups do not raise: found / not found / transport failure come back
as LookupResult values.
"""

from typing import Any, Dict, Optional


class CatalogError(Exception):
    """Root of the hierarchy; subclasses only change `default_message`."""

    default_message = "An unexpected error occurred"

    def __init__(self, message: Optional[str] = None, context: Optional[Dict[str, Any]] = None):
        self.message = message or self.default_message
        self.context = dict(context or {})
        super().__init__(self.message)


class ValidationError(CatalogError):
    """
    Input passed schema validation (422 is Pydantic's job) but breaks a rule
    of the catalog, e.g. an ID that is already taken.
    """

    default_message = "Validation failed"

    def __init__(self, message: Optional[str] = None, field: Optional[str] = None, **kwargs):
        super().__init__(message, **kwargs)
        self.field = field
        if field:
            self.context["field"] = field


class AuthenticationError(CatalogError):
    default_message = "Authentication required"


class AuthorizationError(CatalogError):
    """The caller's authority (USER) is below what the route needs (ADMIN)."""

    default_message = "Insufficient authority"

    def __init__(self, required: str, **kwargs):
        super().__init__(**kwargs)
        self.required = required
        self.context["required_authority"] = required


class NotFoundError(CatalogError):
    """Route handlers raise this when the repository returns None / []."""

    def __init__(self, resource: str = "app", resource_id: Optional[str] = None, **kwargs):
        if resource_id:
            message = f"{resource} with ID '{resource_id}' was not found"
        else:
            message = f"No {resource} found"
        super().__init__(message, **kwargs)
        self.context.update(resource=resource)
        if resource_id:
            self.context["resource_id"] = resource_id


class RepositoryError(CatalogError):
    """
    A read or write against the apps table failed, or update_fields() named
    an app that does not exist.

    HTTP clients get a generic 500. Inside a sync run it is caught per app:
    that app keeps its stored state and the batch moves on.
    """

    default_message = "A database error occurred. Please try again later."


class CatalogFetchError(CatalogError):
    """
    The catalog snapshot could not be read, even after retries.

    The only failure that stops a whole sync run: no batch is scheduled.
    """

    default_message = "Could not read the app catalog; store sync was not started."
