"""
A client for the identity service
"""
from collections.abc import Mapping
from typing import List

from . import ServiceError
from .service import CloudService

class Identity(CloudService):
    """
    a client for the identity service beyond the token exchange handled by the
    :py:class:`~hew.cloud.auth.Session`
    """
    service_type = "identity"
    version = "2.0"

    def list_tenants(self) -> List[Mapping]:
        """
        return descriptions of the tenants that the session's credentials give access to
        """
        url = self.endpoint().rstrip('/') + "/tenants"
        resp = self._request("GET", url)
        if not isinstance(resp.data, Mapping) or not isinstance(resp.data.get('tenants'), list):
            raise ServiceError("Tenant listing missing from response", url, resp.text)
        return resp.data['tenants']
