"""Exception hierarchy for caller-facing failures.

Evaluation and repair faults never surface as exceptions; these are only
raised for misuse such as bad configuration or an unusable repair client.
"""


class XRayError(Exception):
    """Base class for locator-xray errors."""


class ConfigurationError(XRayError):
    """Raised when configuration values cannot be interpreted."""


class RepairClientError(XRayError):
    """Raised when a repair client cannot be initialized."""
