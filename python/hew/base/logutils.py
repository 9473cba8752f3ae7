"""
Logging helpers for recording HTTP traffic at a level more verbose than DEBUG
"""
import logging
from collections.abc import Mapping

BLAB = logging.DEBUG - 1
logging.addLevelName(BLAB, "BLAB")

MASK = "****"

def blab(log: logging.Logger, msg: str, *args, **kwargs):
    """
    record a message at the BLAB level, which sits just below DEBUG.  Such messages are suppressed
    when the logger is set to DEBUG and are meant for voluminous output like header dumps.
    """
    log.log(BLAB, msg, *args, **kwargs)

def blab_headers(log: logging.Logger, label: str, headers: Mapping, secret=()):
    """
    record a dump of HTTP headers at the BLAB level.  The values of headers named in ``secret``
    (compared case-insensitively) are replaced with a mask.  Nothing is formatted unless the
    logger is recording BLAB messages.
    :param Logger   log:  the Logger to record to
    :param str    label:  a label introducing the dump (e.g. "request headers")
    :param Mapping headers:  the headers to dump
    :param secret:        the names of headers whose values must not be recorded
    """
    if not log.isEnabledFor(BLAB):
        return
    secret = set(s.lower() for s in secret)
    shown = dict((k, (MASK if k.lower() in secret else v)) for k, v in headers.items())
    log.log(BLAB, "%s: %s", label, shown)
