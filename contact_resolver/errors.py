"""Contact Resolver Exceptions.

Error taxonomy for counterparty resolution:
- InvalidNameError: caller passed a blank or meaningless raw name
- StoreUnavailableError: a contact/alias store could not be reached
- CreationConflictError: the create+learn unit lost a race on the alias key
"""


class ContactResolutionError(Exception):
    """Base exception for contact resolution errors."""
    pass


class InvalidNameError(ContactResolutionError, ValueError):
    """Raw name is empty, whitespace-only, or normalizes to nothing."""

    def __init__(self, message: str, raw_name: str = ""):
        super().__init__(message)
        self.raw_name = raw_name


class StoreUnavailableError(ContactResolutionError):
    """Contact or alias store cannot be reached (or is inconsistent).

    Propagated unchanged to the caller. Retry policy belongs to the
    caller/orchestrator (e.g. the Temporal activity retry policy).
    """
    pass


class CreationConflictError(ContactResolutionError):
    """An alias already exists for (tenant, company, normalized name).

    Raised by AliasStore.insert_alias. The provisioner handles it by
    re-resolving once.
    """

    def __init__(self, message: str, normalized_name: str = ""):
        super().__init__(message)
        self.normalized_name = normalized_name
