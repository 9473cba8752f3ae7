"""
The channel through which all HTTP requests to cloud services are sent.

A :py:class:`Transport` attaches the session's bearer token, normalizes request headers, sends the
request via :py:mod:`requests`, and converts the result either into a fully-read
:py:class:`Response` or a live :py:class:`ResponseStream`.  Responses outside the 2xx range and
network-level failures are raised as :py:class:`~hew.cloud.TransportError`.
"""
import logging
from collections.abc import Mapping
from typing import Union, Iterable

import requests
from requests.structures import CaseInsensitiveDict

from . import system, ServiceError, TransportError, __version__
from hew.base.config import ConfigurationException
from hew.base.logutils import blab_headers

USER_AGENT = f"hew-python/{__version__}"
DEFAULT_TIMEOUT = 3600
DEFAULT_CHUNK_SIZE = 65536
JSON_TYPE = "application/json"
AUTH_HEADER = "x-auth-token"

deflog = system.getSysLogger().getChild("transport")

class Response:
    """
    a fully read response from a service.

    Public attributes:

    ``status``
        the HTTP status code
    ``reason``
        the HTTP status message
    ``headers``
        the response headers as a case-insensitive dictionary
    ``content``
        the response body as bytes (empty for HEAD requests)
    ``data``
        the response body parsed as JSON, if the service labeled it as such; otherwise, None
    """

    def __init__(self, status: int, headers: Mapping, content: bytes=b'', data=None,
                 reason: str=None):
        self.status = status
        self.reason = reason
        self.headers = CaseInsensitiveDict(headers or {})
        self.content = content or b''
        self.data = data

    @property
    def text(self) -> str:
        """
        the response body decoded as UTF-8 text
        """
        return self.content.decode('utf-8', errors='replace')

class ResponseStream:
    """
    a live, readable handle to a response body that has not been read yet.  The body is pulled
    from the network only as the caller reads it.  Closing the stream aborts the transfer.
    """

    def __init__(self, resp: requests.Response, method: str=None, url: str=None,
                 chunk_size: int=DEFAULT_CHUNK_SIZE):
        self._resp = resp
        self._method = method
        self.url = url
        self.chunk_size = chunk_size
        self.status = resp.status_code
        self.headers = CaseInsensitiveDict(resp.headers)
        self._chunks = resp.iter_content(chunk_size)
        self._buf = b''
        self._eof = False
        self.closed = False

    def _next_chunk(self) -> bytes:
        try:
            return next(self._chunks)
        except StopIteration:
            self._eof = True
            return b''
        except requests.RequestException as ex:
            self.close()
            raise TransportError(method=self._method, url=self.url, cause=ex) from ex

    def read(self, size: int=-1) -> bytes:
        """
        read and return up to ``size`` bytes from the body.  If ``size`` is negative or None,
        the rest of the body is returned.  An empty result indicates the end of the body.
        """
        if size is None or size < 0:
            parts = [self._buf]
            self._buf = b''
            while not self._eof:
                parts.append(self._next_chunk())
            return b''.join(parts)

        while len(self._buf) < size and not self._eof:
            self._buf += self._next_chunk()
        out, self._buf = self._buf[:size], self._buf[size:]
        return out

    def __iter__(self):
        while True:
            chunk = self.read(self.chunk_size)
            if not chunk:
                break
            yield chunk

    def close(self):
        """
        release the underlying connection, abandoning any unread content
        """
        if not self.closed:
            self._eof = True
            self.closed = True
            self._resp.close()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()

def iter_chunks(body: Union[Iterable, object], chunk_size: int=DEFAULT_CHUNK_SIZE):
    """
    return an iterator over the bytes of a request body given either as a readable (file-like)
    object or as an iterable of byte strings.  Sending an iterator causes the request to be
    made with chunked transfer encoding.
    """
    if hasattr(body, 'read'):
        while True:
            buf = body.read(chunk_size)
            if not buf:
                break
            if isinstance(buf, str):
                buf = buf.encode('utf-8')
            yield buf
    else:
        for buf in body:
            if isinstance(buf, str):
                buf = buf.encode('utf-8')
            yield buf

class Transport:
    """
    an executor for HTTP requests against cloud services.

    This class supports the following configuration parameters:

    ``timeout``
        (float) _optional_.  the number of seconds to wait for the service to respond to a
        buffered request (default: 3600).  Streamed responses are not subject to a timeout.
    ``ca_bundle``
        (str) _optional_.  the path to a CA certificate bundle that should be used to validate
        the remote server's site certificate.
    ``site_cert_verify``
        (bool) _optional_.  if False, the remote server's site certificate will not be
        verified (default: True).
    ``user_agent``
        (str) _optional_.  the User-Agent value to send with each request
    ``chunk_size``
        (int) _optional_.  the number of bytes to read at a time from streamed bodies
        (default: 65536).
    """

    def __init__(self, config: Mapping=None, log: logging.Logger=None):
        """
        initialize the transport
        :param dict config:  the configuration parameters (see class documentation)
        :param Logger  log:  the Logger to send messages to
        """
        if not config:
            config = {}
        if not log:
            log = deflog
        self.log = log

        self.timeout = config.get('timeout', DEFAULT_TIMEOUT)
        if not isinstance(self.timeout, (int, float)) or isinstance(self.timeout, bool) or \
           self.timeout <= 0:
            raise ConfigurationException("Transport: timeout must be a positive number: " +
                                         repr(self.timeout))
        self.chunk_size = config.get('chunk_size', DEFAULT_CHUNK_SIZE)
        if not isinstance(self.chunk_size, int) or self.chunk_size < 1:
            raise ConfigurationException("Transport: chunk_size must be a positive integer: " +
                                         repr(self.chunk_size))
        self.user_agent = config.get('user_agent', USER_AGENT)

        self._reqkw = {}
        if not config.get('site_cert_verify', True):
            self._reqkw['verify'] = False
        elif config.get('ca_bundle'):
            self._reqkw['verify'] = config['ca_bundle']

        self._http = requests.Session()

    def close(self):
        """
        release any pooled connections
        """
        self._http.close()

    def execute(self, method: str, url: str, session=None, headers: Mapping=None, json=None,
                data: Union[bytes, str]=None, body_stream=None, query: Mapping=None,
                stream: bool=False) -> Union[Response, ResponseStream]:
        """
        send a request and return its response.

        At most one of ``json``, ``data``, and ``body_stream`` may be provided.

        :param str method:   the HTTP method (e.g. "GET", "PUT")
        :param str    url:   the full URL to send the request to
        :param Session session:  if provided, the session to take the bearer token from
        :param dict headers: the request headers to include
        :param json:         structured data to serialize as the JSON request body
        :param bytes  data:  a pre-built request body
        :param body_stream:  a readable object or an iterable of bytes to stream as the request
                             body using chunked transfer encoding
        :param dict query:   query parameters to add to the URL
        :param bool stream:  if True, return a :py:class:`ResponseStream` as soon as the response
                             headers arrive; otherwise, read the full body and return a
                             :py:class:`Response`.
        :raises TransportError:  if the service responds with a non-2xx status or cannot be
                                 reached
        :raises ServiceError:    if the response is labeled as JSON but cannot be parsed
        :raises NotAuthenticated: if a session is given and authentication fails
        """
        bodies = [b for b in (json, data, body_stream) if b is not None]
        if len(bodies) > 1:
            raise ValueError("execute(): only one of json, data, or body_stream may be given")

        hdrs = {}
        if headers:
            hdrs = dict((k.lower(), v) for k, v in headers.items())
        if 'user-agent' not in hdrs:
            hdrs['user-agent'] = self.user_agent
        if 'accept' not in hdrs:
            hdrs['accept'] = JSON_TYPE
        if session is not None:
            hdrs[AUTH_HEADER] = session.get_bearer_token()

        kw = dict(self._reqkw)
        if json is not None:
            kw['json'] = json
        elif data is not None:
            if isinstance(data, str):
                data = data.encode('utf-8')
            kw['data'] = data
        elif body_stream is not None:
            kw['data'] = iter_chunks(body_stream, self.chunk_size)
        if query:
            kw['params'] = query
        kw['timeout'] = None if stream else self.timeout

        self.log.debug("%s %s", method, url)
        blab_headers(self.log, "request headers", hdrs, secret=(AUTH_HEADER,))

        try:
            resp = self._http.request(method, url, headers=hdrs, stream=stream, **kw)

            if resp.status_code < 200 or resp.status_code > 299:
                body = resp.content
                resp.close()
                self.log.debug("%s %s returned %d %s", method, url, resp.status_code, resp.reason)
                raise TransportError(method=method, url=url, code=resp.status_code, body=body)

            if stream:
                return ResponseStream(resp, method, url, self.chunk_size)

            content = resp.content

        except requests.RequestException as ex:
            raise TransportError(method=method, url=url, cause=ex) from ex

        blab_headers(self.log, "response headers", resp.headers)
        out = Response(resp.status_code, resp.headers, content, reason=resp.reason)
        ctype = resp.headers.get('content-type', '').split(';')[0].strip().lower()
        if content and ctype == JSON_TYPE:
            try:
                out.data = resp.json()
            except ValueError as ex:
                raise ServiceError("Malformed JSON returned from %s" % url, url, out.text,
                                   ex) from ex
        return out
