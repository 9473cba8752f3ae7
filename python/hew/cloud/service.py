"""
A base class for clients of individual cloud services
"""
import logging

from . import system
from .auth import Session
from .transport import Transport, Response

class CloudService:
    """
    a base class for a client of a particular (versioned) cloud service.  Its endpoint is looked up
    in the session's service catalog each time it is needed.
    """
    service_type = None
    version = None

    def __init__(self, session: Session, transport: Transport=None, log: logging.Logger=None):
        """
        initialize the client
        :param Session session:  the authenticated session to operate under
        :param Transport transport:  the transport to send requests through; if not provided,
                                 the session's transport is used.
        :param Logger      log:  the Logger to send messages to
        """
        self.session = session
        if not transport:
            transport = session.transport
        self.transport = transport
        if not log:
            log = system.getSysLogger().getChild(self.__class__.__name__.lower())
        self.log = log

    def endpoint(self) -> str:
        """
        return the base URL for this service in the session's region
        :raises NotProvisioned:  if the service is not available to the account
        """
        return self.session.require_endpoint(self.service_type, self.version)

    def _request(self, method: str, url: str, **kw) -> Response:
        return self.transport.execute(method, url, session=self.session, **kw)
