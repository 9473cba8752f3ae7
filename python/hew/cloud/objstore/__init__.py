"""
Client support for the object storage service and its CDN extension.

:py:class:`ObjectStorage` provides account-level operations (listing, creating, and deleting
containers; account metadata).  Operations on a container and the objects it holds are provided by
:py:class:`~hew.cloud.objstore.container.Container` and
:py:class:`~hew.cloud.objstore.storedobj.StoredObject`.
"""
from collections.abc import Mapping
from typing import List

from .. import NotFound, ServiceError
from ..service import CloudService
from . import meta
from .permissions import Permissions
from .storedobj import StoredObject
from .container import Container, CdnConfig

__all__ = [ "ObjectStorage", "Container", "StoredObject", "Permissions", "CdnConfig" ]

class ObjectStorage(CloudService):
    """
    a client for account-level object storage operations
    """
    service_type = Container.service_type
    version = Container.version

    def _container_url(self, name: str) -> str:
        return self.endpoint().rstrip('/') + '/' + meta.escape(name)

    def _container(self, name: str) -> Container:
        return Container(self.session, name, self.transport, self.log.getChild("container"))

    def list_containers(self) -> List[Mapping]:
        """
        return descriptions of the containers in the account.  Each description is a dictionary
        including the container's ``name``, ``count`` (of objects), and ``bytes``.
        """
        url = self.endpoint()
        resp = self._request("GET", url, query={"format": "json"})
        if not resp.content:
            return []
        if not isinstance(resp.data, list):
            raise ServiceError("Unexpected container listing format", url, resp.text)
        return resp.data

    def get_container(self, name: str) -> Container:
        """
        return an interface to the named container
        :raises NotFound:  if the account has no container with that name
        """
        if not any(c.get('name') == name for c in self.list_containers()):
            raise NotFound("container " + name)
        return self._container(name)

    def create_container(self, name: str) -> Container:
        """
        create a container with the given name (if it does not already exist) and return an
        interface to it
        """
        self._request("PUT", self._container_url(name))
        self.log.info("Created container %s", name)
        return self._container(name)

    def delete_container(self, name: str):
        """
        delete the named container.  The service will refuse if it is not empty.
        """
        self._request("DELETE", self._container_url(name))
        self.log.info("Deleted container %s", name)

    def delete_container_and_all_contents(self, name: str):
        """
        delete all objects in the named container and then the container itself
        """
        self._container(name).delete_all_objects()
        self.delete_container(name)

    def get_all_metadata(self) -> Mapping:
        """
        return all of the account's ``x-account-*`` headers.  Names are lower-case.
        """
        resp = self._request("HEAD", self.endpoint())
        return meta.select(resp.headers, meta.ACCOUNT_PREFIX)

    def get_meta_value(self, name: str) -> str:
        name = meta.meta_name(meta.ACCOUNT_PREFIX, name)
        return meta.unescape(self.get_all_metadata().get(name))

    def set_meta_value(self, name: str, value: str):
        name = meta.meta_name(meta.ACCOUNT_PREFIX, name)
        self._request("POST", self.endpoint(), headers={name: meta.escape(value)})

    def delete_meta_value(self, name: str):
        name = meta.remove_name(meta.meta_name(meta.ACCOUNT_PREFIX, name))
        self._request("POST", self.endpoint(), headers={name: ''})
