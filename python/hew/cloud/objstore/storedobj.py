"""
A client interface to a single object in object storage.

Transfers are verified end-to-end:  uploads send the MD5 digest of the content and compare it
against the ETag the service reports back; downloads compare the digest of the received bytes
against the ETag the service sent with them.  A mismatch results in an
:py:class:`~hew.cloud.IntegrityError`.
"""
import time, hmac, hashlib, logging
from collections.abc import Mapping
from datetime import datetime
from urllib.parse import quote, urlsplit, urlencode

from .. import ServiceError, TransportError, IntegrityError
from . import meta
from .hashing import HashingReader, VerifyingStream, normalize_etag, is_md5, md5_hex

# headers reported by the service that cannot be set by a client
READONLY_HEADERS = frozenset("content-length etag last-modified x-trans-id connection "
                             "accept-ranges x-timestamp".split())

class StoredObject:
    """
    a client interface to a named object within a container.  Creating an instance does not imply
    that the object exists.
    """

    def __init__(self, container, name: str, log: logging.Logger=None):
        """
        :param Container container:  the container holding the object
        :param str name:  the name of the object
        """
        self.container = container
        self.name = name
        if not log:
            log = container.log.getChild("obj")
        self.log = log

    @property
    def session(self):
        return self.container.session

    @property
    def transport(self):
        return self.container.transport

    def url(self) -> str:
        """
        return the URL of the object
        """
        return self.container.public_url() + '/' + quote(self.name)

    def _request(self, method: str, url: str, **kw):
        return self.transport.execute(method, url, session=self.session, **kw)

    def exists(self) -> bool:
        """
        return True if the object exists in its container
        """
        try:
            self._request("HEAD", self.url())
        except TransportError as ex:
            if ex.code == 404:
                return False
            raise
        return True

    def get_stream(self):
        """
        open the object's content for reading.  The returned stream has ``read()``, iteration,
        and ``close()`` support, and a ``headers`` attribute holding the response headers.  When
        the service provides a plain MD5 ETag, the content's digest is checked when the end of
        the stream is reached.
        :raises IntegrityError:  (upon reading the end of the content) if the digests do not match
        """
        url = self.url()
        strm = self._request("GET", url, headers={"accept": "*/*"}, stream=True)
        etag = normalize_etag(strm.headers.get('etag'))
        if 'x-object-manifest' not in strm.headers and is_md5(etag):
            return VerifyingStream(strm, etag, url)
        return strm

    def get(self):
        """
        return the object's headers and content
        :return:  a 2-tuple containing the response headers and the content as bytes
        :raises IntegrityError:  if the content's digest does not match the one reported by the
                                 service
        """
        with self.get_stream() as strm:
            content = strm.read()
        return strm.headers, content

    def _check_etag(self, digest: str, etag: str, url: str):
        etag = normalize_etag(etag)
        if etag and etag != digest:
            self.log.error("Checksum mismatch on upload to %s: sent %s, got %s", url, digest, etag)
            raise IntegrityError(digest, etag, url)

    def put(self, data, content_type: str=None) -> str:
        """
        upload the given content as this object's content
        :param data:  the content as bytes or str (which will be encoded as UTF-8)
        :param str content_type:  the MIME type to store with the object
        :return:  the MD5 digest of the content
        :raises IntegrityError:  if the service reports a different digest for what it received
        """
        if isinstance(data, str):
            data = data.encode('utf-8')
        digest = md5_hex(data)
        hdrs = {"etag": digest, "content-length": str(len(data))}
        if content_type:
            hdrs['content-type'] = content_type

        url = self.url()
        resp = self._request("PUT", url, headers=hdrs, data=data)
        self._check_etag(digest, resp.headers.get('etag'), url)
        return digest

    def put_stream(self, stream, content_type: str=None) -> str:
        """
        upload the content of a readable stream (or an iterable of bytes) as this object's content.
        The content is sent in chunks as it is read.
        :return:  the MD5 digest of the content
        :raises IntegrityError:  if the service reports a different digest for what it received
        """
        reader = HashingReader(stream, self.transport.chunk_size)
        hdrs = {}
        if content_type:
            hdrs['content-type'] = content_type

        url = self.url()
        resp = self._request("PUT", url, headers=hdrs, body_stream=reader)
        digest = reader.hexdigest()
        self._check_etag(digest, resp.headers.get('etag'), url)
        return digest

    def delete(self):
        """
        delete this object.  It is not an error if the object does not exist.
        """
        try:
            self._request("DELETE", self.url())
        except TransportError as ex:
            if ex.code != 404:
                raise
            self.log.debug("%s/%s: already deleted", self.container.name, self.name)

    def get_temp_url(self, ttl: int, method: str="GET") -> str:
        """
        return a URL that grants access to this object without a token for a limited time.
        :param int    ttl:  the number of seconds the URL should remain valid
        :param str method:  the HTTP method the URL will allow
        :raises ServiceError:  if the tenant ID is not known
        """
        url = self.url()
        tenant = self.session.tenant_id
        if not tenant:
            raise ServiceError("Tenant ID not available for signing temporary URL", url)
        cred = self.session.credential

        expires = int(time.time() + ttl)
        body = "%s\n%d\n%s" % (method.upper(), expires, urlsplit(url).path)
        sig = hmac.new(cred.secret_key.encode('utf-8'), body.encode('utf-8'),
                       hashlib.sha1).hexdigest()
        query = urlencode({"temp_url_sig": "%s:%s:%s" % (tenant, cred.access_key, sig),
                           "temp_url_expires": expires}, safe=':')
        return url + '?' + query

    def get_headers(self) -> Mapping:
        """
        return all of the object's headers
        """
        return self._request("HEAD", self.url()).headers

    def get_header(self, name: str) -> str:
        return self.get_headers().get(name)

    def _settable_headers(self) -> Mapping:
        return dict((k.lower(), v) for k, v in self.get_headers().items()
                    if k.lower() not in READONLY_HEADERS)

    # The service replaces all object headers on POST, so the full set is read, modified,
    # and written back.  Concurrent updates to the same object can be lost.

    def set_header(self, name: str, value, escape: bool=False):
        """
        set the value of one of the object's headers, preserving the others
        :param bool escape:  if True, percent-encode the value
        """
        hdrs = self._settable_headers()
        hdrs[name.lower()] = meta.escape(value) if escape else str(value)
        self._request("POST", self.url(), headers=hdrs)

    def delete_header(self, name: str):
        hdrs = self._settable_headers()
        if hdrs.pop(name.lower(), None) is None:
            return
        self._request("POST", self.url(), headers=hdrs)

    def get_meta_value(self, name: str) -> str:
        return meta.unescape(self.get_header(meta.meta_name(meta.OBJECT_META_PREFIX, name)))

    def set_meta_value(self, name: str, value: str):
        self.set_header(meta.meta_name(meta.OBJECT_META_PREFIX, name), value, True)

    def delete_meta_value(self, name: str):
        self.delete_header(meta.meta_name(meta.OBJECT_META_PREFIX, name))

    def get_all_meta_values(self) -> Mapping:
        """
        return the user-defined metadata attached to the object, keyed by name without the
        ``x-object-meta-`` prefix
        """
        hdrs = meta.select(self.get_headers(), meta.OBJECT_META_PREFIX)
        return dict((k[len(meta.OBJECT_META_PREFIX):], meta.unescape(v)) for k, v in hdrs.items())

    def self_destruct(self, after: int=None, at=None):
        """
        schedule this object for deletion.  Exactly one of ``after`` or ``at`` must be given; any
        schedule previously set the other way is replaced.
        :param int after:  the number of seconds from now after which to delete the object
        :param at:         the time at which to delete the object, given as a datetime or as
                           epoch seconds
        """
        if (after is None) == (at is None):
            raise ValueError("self_destruct(): exactly one of after or at must be given")
        if after is not None:
            name, other, value = "x-delete-after", "x-delete-at", int(after)
        else:
            if isinstance(at, datetime):
                at = at.timestamp()
            name, other, value = "x-delete-at", "x-delete-after", int(at)

        hdrs = self._settable_headers()
        hdrs.pop(other, None)
        hdrs[name] = str(value)
        self._request("POST", self.url(), headers=hdrs)
