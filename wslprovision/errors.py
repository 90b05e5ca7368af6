"""Exceptions raised while provisioning."""


class ProvisionError(Exception):
    """Base class for provisioning errors."""


class DuplicateNameError(ProvisionError):
    """A step with the same name is already registered."""


class NotFoundError(ProvisionError):
    """No step is registered under the requested name."""


class CheckError(ProvisionError):
    """Presence of a component could not be determined."""


class ApplyError(ProvisionError):
    """The primary install of a component failed."""


class FallbackError(ProvisionError):
    """Both the primary install and the fallback failed."""


class VerifyError(ProvisionError):
    """A component did not pass verification after install."""


class PreconditionError(ProvisionError):
    """A precondition for the whole run is not met."""
