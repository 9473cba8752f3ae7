"""
Stream wrappers that compute the MD5 digest of content as it passes through them, used to verify
the integrity of object uploads and downloads.
"""
import re, hashlib

from .. import IntegrityError
from ..transport import iter_chunks, DEFAULT_CHUNK_SIZE

_md5_re = re.compile(r'^[0-9a-f]{32}$')

def normalize_etag(etag: str) -> str:
    """
    return an ETag value with surrounding quotes and whitespace removed and lower-cased
    """
    if etag is None:
        return None
    return etag.strip().strip('"').lower()

def is_md5(etag: str) -> bool:
    """
    return True if the given (normalized) ETag looks like a plain MD5 hex digest.  Large objects
    assembled from segments carry other kinds of ETags.
    """
    return bool(etag) and bool(_md5_re.match(etag))

def md5_hex(data: bytes) -> str:
    return hashlib.md5(data).hexdigest()

class HashingReader:
    """
    an iterable over the chunks of a readable (or iterable) source that updates an MD5 digest
    with each chunk as it is consumed.  The full content is never held in memory.
    """

    def __init__(self, source, chunk_size: int=DEFAULT_CHUNK_SIZE):
        self._source = source
        self.chunk_size = chunk_size
        self._hash = hashlib.md5()
        self.size = 0
        self.done = False

    def __iter__(self):
        for chunk in iter_chunks(self._source, self.chunk_size):
            self._hash.update(chunk)
            self.size += len(chunk)
            yield chunk
        self.done = True

    def hexdigest(self) -> str:
        """
        the MD5 digest (as a hex string) of the content consumed so far
        """
        return self._hash.hexdigest()

class VerifyingStream:
    """
    a readable wrapper around a download stream that checks the MD5 digest of the content against
    an expected value once the end of the content is reached.  An
    :py:class:`~hew.cloud.IntegrityError` is raised from the read that reaches the end if the
    digests do not match.  Content abandoned before the end is not checked.
    """

    def __init__(self, stream, expected: str, url: str=None):
        """
        :param stream:        the readable stream to wrap (usually a
                              :py:class:`~hew.cloud.transport.ResponseStream`)
        :param str expected:  the MD5 hex digest reported by the server
        :param str      url:  the URL the content is being retrieved from
        """
        self._stream = stream
        self.expected = normalize_etag(expected)
        self.url = url
        self.headers = getattr(stream, 'headers', {})
        self.chunk_size = getattr(stream, 'chunk_size', DEFAULT_CHUNK_SIZE)
        self._hash = hashlib.md5()
        self.verified = False

    def _check(self):
        if self.verified:
            return
        actual = self._hash.hexdigest()
        if actual != self.expected:
            raise IntegrityError(actual, self.expected, self.url)
        self.verified = True

    def read(self, size: int=-1) -> bytes:
        if size == 0:
            return b''
        buf = self._stream.read(size)
        if buf:
            self._hash.update(buf)
        if not buf or size is None or size < 0:
            self._check()
        return buf

    def __iter__(self):
        while True:
            chunk = self.read(self.chunk_size)
            if not chunk:
                break
            yield chunk

    def close(self):
        self._stream.close()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
