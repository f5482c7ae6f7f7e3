"""Exception types raised by newsletter-manager."""


class NewsletterManagerError(Exception):
    """Base class for all newsletter-manager errors."""


class PolicyError(NewsletterManagerError):
    """Raised when a signal policy document is invalid."""


class SourceError(NewsletterManagerError):
    """Raised when a candidate source cannot enumerate its elements."""


class ReadinessTimeout(NewsletterManagerError):
    """Raised when a source does not become ready in time."""
