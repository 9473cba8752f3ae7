"""
A client interface to a single container in object storage
"""
import logging
from collections import namedtuple
from collections.abc import Mapping
from typing import List

from .. import ServiceError
from ..auth import Session
from ..service import CloudService
from ..transport import Transport
from . import meta
from .permissions import Permissions
from .storedobj import StoredObject

CDN_SERVICE_TYPE = "hpext:cdn"
CDN_SERVICE_VERSION = "1.0"
DEFAULT_CDN_TTL = 86400

READ_ACL = "x-container-read"
WRITE_ACL = "x-container-write"

CdnConfig = namedtuple("CdnConfig", "cdn_uri cdn_ssl_uri ttl enabled")

class Container(CloudService):
    """
    a client interface to a named container.  Nothing about the container is cached: each
    operation resolves the object storage endpoint and contacts the service.  Creating an
    instance does not imply that the container exists.
    """
    service_type = "object-store"
    version = "1.0"

    def __init__(self, session: Session, name: str, transport: Transport=None,
                 log: logging.Logger=None):
        """
        :param Session session:  the session to operate under
        :param str        name:  the name of the container
        :param Transport transport:  the transport to send requests through
        :param Logger      log:  the Logger to send messages to
        """
        super(Container, self).__init__(session, transport, log)
        self.name = name

    def public_url(self) -> str:
        """
        return the URL of the container
        :raises NotProvisioned:  if object storage is not available to the account
        """
        ep = self.endpoint()
        if not ep.endswith('/'):
            ep += '/'
        return ep + meta.escape(self.name)

    def list_objects(self, prefix: str=None, delimiter: str=None, path: str=None,
                     marker: str=None, limit: int=None) -> List[Mapping]:
        """
        return descriptions of the objects in this container.  Each description is a dictionary
        that includes the object's ``name``, ``bytes``, ``hash``, ``content_type``, and
        ``last_modified``.
        :param str    prefix:  return only objects whose names start with this prefix
        :param str delimiter:  roll up names containing this character after the prefix
        :param str      path:  return only objects nested within this pseudo-directory
        :param str    marker:  return only objects whose names sort after this value
        :param int     limit:  return at most this many objects
        """
        query = {"format": "json"}
        for key, val in (("prefix", prefix), ("delimiter", delimiter), ("path", path),
                         ("marker", marker), ("limit", limit)):
            if val is not None:
                query[key] = val

        url = self.public_url()
        resp = self._request("GET", url, query=query)
        if not resp.content:
            return []
        if not isinstance(resp.data, list):
            raise ServiceError("Unexpected object listing format", url, resp.text)
        return resp.data

    def get_all_metadata(self) -> Mapping:
        """
        return all of the container's ``x-container-*`` headers.  Names are lower-case.
        """
        resp = self._request("HEAD", self.public_url())
        return meta.select(resp.headers, meta.CONTAINER_PREFIX)

    def _set_header(self, name: str, value, escape: bool=True):
        if escape:
            value = meta.escape(value)
        self._request("POST", self.public_url(), headers={name: str(value)})

    def _get_header(self, name: str) -> str:
        return self.get_all_metadata().get(name.lower())

    def get_meta_value(self, name: str) -> str:
        """
        return the value of a user-defined metadata item, or None if it is not set
        """
        return meta.unescape(self._get_header(meta.meta_name(meta.CONTAINER_PREFIX, name)))

    def set_meta_value(self, name: str, value: str):
        self._set_header(meta.meta_name(meta.CONTAINER_PREFIX, name), value)

    def delete_meta_value(self, name: str):
        name = meta.remove_name(meta.meta_name(meta.CONTAINER_PREFIX, name))
        self._set_header(name, '', False)

    def set_sync_key(self, key: str):
        """
        set the shared secret used to synchronize this container with another.  The same key must
        be set on both containers.
        """
        self._set_header("x-container-sync-key", key)

    def set_sync_target(self, target: str):
        """
        set the URL of the container that this container should be synchronized to
        """
        self._set_header("x-container-sync-to", target, False)

    def set_sync(self, key: str, target: str):
        self.set_sync_key(key)
        self.set_sync_target(target)

    def enable_versioning(self, target: str):
        """
        arrange for prior versions of overwritten objects to be saved into the named container
        """
        self._set_header("x-versions-location", target, False)

    def disable_versioning(self):
        self._set_header("x-versions-location", '', False)

    def get_permissions(self) -> Permissions:
        """
        return the container's current access permissions
        """
        md = self.get_all_metadata()
        return Permissions(md.get(READ_ACL), md.get(WRITE_ACL))

    def set_permissions(self, perms: Permissions):
        """
        replace the container's access permissions with those given.  The read list is updated
        first; the write list is not updated if that fails.
        """
        self._set_header(READ_ACL, perms.read_header(), False)
        self._set_header(WRITE_ACL, perms.write_header(), False)

    def make_private(self):
        """
        remove all access permissions from the container
        """
        self.set_permissions(Permissions())

    def make_public(self):
        """
        allow anyone to read and list the container's objects, leaving other permissions in place
        """
        self._update_permissions(lambda p: p.grant_public_read().grant_world_listing())

    def _update_permissions(self, update):
        perms = self.get_permissions()
        update(perms)
        self.set_permissions(perms)

    def grant_read_to_user(self, user: str):
        self._update_permissions(lambda p: p.grant_read(user))

    def revoke_read_from_user(self, user: str):
        self._update_permissions(lambda p: p.revoke_read(user))

    def grant_write_to_user(self, user: str):
        self._update_permissions(lambda p: p.grant_write(user))

    def revoke_write_from_user(self, user: str):
        self._update_permissions(lambda p: p.revoke_write(user))

    def grant_read_to_world(self):
        """
        allow anyone to read the container's objects without a token
        """
        self._update_permissions(lambda p: p.grant_public_read())

    def revoke_read_from_world(self):
        self._update_permissions(lambda p: p.revoke_public_read())

    def grant_write_to_world(self):
        """
        allow anyone to write objects into the container without a token
        """
        self._update_permissions(lambda p: p.grant_public_write())

    def revoke_write_from_world(self):
        self._update_permissions(lambda p: p.revoke_public_write())

    def grant_listing_to_world(self):
        self._update_permissions(lambda p: p.grant_world_listing())

    def revoke_listing_from_world(self):
        self._update_permissions(lambda p: p.revoke_world_listing())

    def _cdn_endpoint(self) -> str:
        ep = self.session.require_endpoint(CDN_SERVICE_TYPE, CDN_SERVICE_VERSION)
        return ep.rstrip('/')

    def _cdn_url(self) -> str:
        return self._cdn_endpoint() + '/' + meta.escape(self.name)

    def is_cdn_enabled(self) -> bool:
        """
        return True if this container is published via the CDN
        """
        url = self._cdn_endpoint()
        resp = self._request("GET", url)
        if isinstance(resp.data, list):
            names = [(c.get('name') if isinstance(c, Mapping) else c) for c in resp.data]
        else:
            names = [n.strip() for n in resp.text.strip().split('\n')]
        return self.name in names

    def _cdn_config(self, headers: Mapping, ttl=None) -> CdnConfig:
        if ttl is None:
            ttl = headers.get('x-ttl')
        try:
            ttl = int(ttl) if ttl is not None else None
        except ValueError as ex:
            raise ServiceError("Non-integer TTL returned by CDN service: " + str(ttl),
                               self._cdn_url(), cause=ex) from ex
        enabled = str(headers.get('x-cdn-enabled', 'true')).lower() == 'true'
        return CdnConfig(headers.get('x-cdn-uri'), headers.get('x-cdn-ssl-uri'), ttl, enabled)

    def enable_cdn(self, ttl: int=None) -> CdnConfig:
        """
        publish this container via the CDN
        :param int ttl:  the number of seconds the CDN may cache the container's objects
                         (default: 86400)
        :return:  the resulting CDN configuration
        """
        if ttl is None:
            ttl = DEFAULT_CDN_TTL
        resp = self._request("PUT", self._cdn_url(), headers={"x-ttl": str(ttl)})
        return self._cdn_config(resp.headers, ttl)

    def disable_cdn(self):
        self._request("DELETE", self._cdn_url())

    def update_cdn_ttl(self, ttl: int) -> CdnConfig:
        resp = self._request("POST", self._cdn_url(), headers={"x-ttl": str(ttl)})
        return self._cdn_config(resp.headers, ttl)

    def get_cdn_config(self) -> CdnConfig:
        """
        return the current CDN configuration of this container
        """
        resp = self._request("HEAD", self._cdn_url())
        return self._cdn_config(resp.headers)

    def get_object(self, name: str) -> StoredObject:
        """
        return an interface to the named object in this container.  The object need not exist.
        """
        return StoredObject(self, name)

    def get(self, name: str):
        return self.get_object(name).get()

    def get_stream(self, name: str):
        return self.get_object(name).get_stream()

    def put(self, name: str, data, content_type: str=None) -> str:
        return self.get_object(name).put(data, content_type)

    def put_stream(self, name: str, stream, content_type: str=None) -> str:
        return self.get_object(name).put_stream(stream, content_type)

    def delete_all_objects(self) -> int:
        """
        delete every object in this container
        :return:  the number of objects deleted
        """
        count = 0
        marker = None
        while True:
            objs = self.list_objects(marker=marker)
            if not objs:
                break
            for obj in objs:
                self.get_object(obj['name']).delete()
                count += 1
            marker = objs[-1]['name']
        self.log.info("Deleted %d objects from container %s", count, self.name)
        return count
