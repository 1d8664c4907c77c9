"""
Exceptions raised by the ingestion pipeline.

Every rejection a request can hit is an IngestError subclass carrying the
HTTP status code and the message returned to the client. The router turns
these into JSON error responses; nothing else in the package needs to know
about HTTP.

Hierarchy:
- AuthorizationError: unknown site, tracking disabled, bad domain key
- PrivacyRejection: excluded IP or excluded bot (routine, not a fault)
- StorageError: counter store or site lookup failed (the only 5xx path)
"""


class IngestError(Exception):
    """Base class for request rejections."""

    status_code: int = 400
    message: str = "Request rejected"

    def __init__(self, message: str | None = None):
        if message is not None:
            self.message = message
        super().__init__(self.message)


class AuthorizationError(IngestError):
    """The request could not be attributed to a trackable site."""

    status_code = 403


class SiteNotFoundError(AuthorizationError):
    status_code = 404
    message = "Website not found or tracking disabled"


class TrackingDisabledError(AuthorizationError):
    """The site exists but its owner account cannot track."""

    status_code = 404
    message = "Website not found or tracking disabled"


class InvalidDomainKeyError(AuthorizationError):
    status_code = 403
    message = "Invalid domain key"


class PrivacyRejection(IngestError):
    """The site's privacy settings exclude this request."""

    status_code = 403


class IpExcludedError(PrivacyRejection):
    message = "IP address excluded"


class BotExcludedError(PrivacyRejection):
    message = "Bot traffic excluded"


class StorageError(IngestError):
    """A counter upsert or site lookup failed."""

    status_code = 500
    message = "Storage failure"


class D1QueryError(Exception):
    """Raised when the D1 API reports an unsuccessful query."""

    def __init__(self, errors):
        self.errors = errors
        super().__init__(f"D1 query failed: {errors}")
