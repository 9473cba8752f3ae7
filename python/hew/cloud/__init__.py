"""
Client support for the HP Cloud family of REST services.

A caller creates a :py:class:`~hew.cloud.auth.Session` from a set of API credentials and passes it
to the service wrappers (e.g. :py:class:`~hew.cloud.objstore.ObjectStorage`).  The session
authenticates lazily, caches the service catalog returned by the identity service, and resolves
each service's endpoint URL from it.  All HTTP traffic passes through a single
:py:class:`~hew.cloud.transport.Transport`.

This module defines the exceptions raised by those components.
"""
from hew.base import HewException, SystemInfoMixin

try:
    from .version import __version__
except ImportError:
    __version__ = "(unset)"

_HEWSYSNAME = "Hew Cloud Client"
_HEWSYSABBREV = "hew"

class CloudSystem(SystemInfoMixin):
    """
    A SystemInfoMixin representing the cloud client system
    """
    def __init__(self, subsysname="", subsysabbrev=""):
        super(CloudSystem, self).__init__(_HEWSYSNAME, _HEWSYSABBREV, subsysname, subsysabbrev,
                                          __version__)

system = CloudSystem("Cloud Services", "cloud")

class CloudException(HewException):
    """
    A general base class for exceptions that occur while using a cloud service
    """
    pass

class NotAuthenticated(CloudException):
    """
    an exception indicating that the client could not authenticate to the identity service, either
    because the credentials were rejected, the configured region is unknown, or the identity
    service could not be reached.
    """

    def __init__(self, message: str=None, region: str=None, code: int=0, cause: Exception=None):
        """
        create the exception
        :param str message:   an explanation of the cause of the error
        :param str region:    the region that authentication was attempted in
        :param int code:      the HTTP response code returned by the identity service, if it
                              responded
        :param Exception cause:  the underlying error
        """
        if not message:
            message = "Failed to authenticate"
            if region:
                message += f" in region {region}"
            if code:
                message += f" ({str(code)})"
            elif cause:
                message += ": " + str(cause)
        super(NotAuthenticated, self).__init__(message, cause)
        self.region = region
        self.code = code or 0

class NotProvisioned(CloudException):
    """
    an exception indicating that the requested service is not available to the account in the
    session's region at the requested version.  This reflects a configuration or entitlement gap
    rather than a communication failure.
    """

    def __init__(self, service_type: str, version: str=None, region: str=None, message: str=None):
        if not message:
            message = f"Service not provisioned: {service_type}"
            if version:
                message += f" (version {version})"
            if region:
                message += f" in region {region}"
        super(NotProvisioned, self).__init__(message)
        self.service_type = service_type
        self.version = version
        self.region = region

class NotFound(CloudException):
    """
    an exception indicating that a named resource (e.g. a container) does not appear in the
    listing returned by the service.
    """

    def __init__(self, resource: str, message: str=None):
        if not message:
            message = f"Resource not found: {resource}"
        super(NotFound, self).__init__(message)
        self.resource = resource

class ServiceError(CloudException):
    """
    an exception indicating that a service returned a well-formed response that could not be
    used, e.g. because its content could not be parsed or was missing expected information.
    """

    def __init__(self, message: str=None, url: str=None, resptext: str=None, cause: Exception=None):
        if not message:
            message = "Unusable response from service"
            if url:
                message += f" at {url}"
            if resptext:
                message += f":\n{resptext}"
        super(ServiceError, self).__init__(message, cause)
        self.url = url
        self.response = resptext

class TransportError(CloudException):
    """
    an exception indicating that an HTTP request failed, either because the service returned a
    response outside of the 2xx range or because of a network-level failure (connection refused,
    DNS error, timeout, etc.).

    Public attributes:

    ``code``
        the HTTP status code returned, or 0 if the service did not respond
    ``body``
        the raw response body (as bytes) when the service responded
    ``method``
        the HTTP method of the failed request
    ``url``
        the URL that was accessed
    """

    def __init__(self, message: str=None, method: str=None, url: str=None, code: int=0,
                 body: bytes=None, cause: Exception=None):
        if not message:
            if code:
                message = f"{method or 'Request'} to {url or 'service'} returned {str(code)}"
            else:
                message = f"Failed to send {method or 'request'} to {url or 'service'}"
                if cause:
                    message += ": " + str(cause)
        super(TransportError, self).__init__(message, cause)
        self.method = method
        self.url = url
        self.code = code or 0
        self.body = body

    @property
    def text(self) -> str:
        """
        the response body as text (or an empty string if there was none)
        """
        if not self.body:
            return ''
        if isinstance(self.body, str):
            return self.body
        return self.body.decode('utf-8', errors='replace')

class IntegrityError(CloudException):
    """
    an exception indicating that the MD5 digest of transferred content does not match the
    digest reported by the server, indicating possible corruption in transit.
    """

    def __init__(self, expected: str, actual: str, url: str=None, message: str=None):
        """
        create the exception
        :param str expected:  the digest computed locally over the transferred bytes
        :param str actual:    the digest reported by the server
        :param str url:       the URL of the object transferred
        """
        if not message:
            message = "checksum mismatch: possible corruption during file transfer"
            if url:
                message += f" ({url})"
        super(IntegrityError, self).__init__(message)
        self.expected = expected
        self.actual = actual
        self.url = url
