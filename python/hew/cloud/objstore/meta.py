"""
Helpers for working with the metadata headers of accounts, containers, and objects
"""
from collections.abc import Mapping
from urllib.parse import quote, unquote

ACCOUNT_PREFIX = "x-account-"
CONTAINER_PREFIX = "x-container-"
OBJECT_META_PREFIX = "x-object-meta-"

# characters left unescaped in metadata values and container names
COMPONENT_SAFE = "-_.!~*'()"

def escape(value) -> str:
    """
    percent-encode a value for use as a header value or URL path component
    """
    return quote(str(value), safe=COMPONENT_SAFE)

def unescape(value: str) -> str:
    if value is None:
        return None
    return unquote(value)

def meta_name(prefix: str, name: str) -> str:
    """
    return the full header name for a user-defined metadata item.  ``prefix`` is the namespace
    (e.g. "x-container-"); the name is lower-cased and given the ``<prefix>meta-`` prefix if it
    does not already have it.
    """
    name = name.lower()
    metapfx = prefix if prefix.endswith("meta-") else prefix + "meta-"
    if not name.startswith(metapfx) or len(name) == len(metapfx):
        name = metapfx + name
    return name

def remove_name(metaname: str) -> str:
    """
    convert a metadata header name into the header name that requests its removal, e.g.
    "x-container-meta-color" to "x-remove-container-meta-color"
    """
    return "x-remove-" + metaname[len("x-"):]

def select(headers: Mapping, prefix: str) -> Mapping:
    """
    return the headers whose (lower-cased) names start with the given prefix
    """
    return dict((k.lower(), v) for k, v in headers.items() if k.lower().startswith(prefix))
