"""
Basic infrastructure shared by all hew subsystems:  the root exception class and a mixin that
identifies the (sub)system a component belongs to.
"""
import logging

try:
    from .version import __version__
except ImportError:
    __version__ = "(unset)"

class HewException(Exception):
    """
    A base class for all exceptions raised by hew libraries
    """

    def __init__(self, message: str=None, cause: Exception=None):
        """
        create the exception
        :param str message:    the description of the problem
        :param Exception cause:  the underlying exception that triggered this one, if any
        """
        if not message:
            if cause:
                message = str(cause)
            else:
                message = "Unknown hew error"
        super(HewException, self).__init__(message)
        self.cause = cause

class SystemInfoMixin(object):
    """
    a mixin that provides identifying information about the system and subsystem a class
    belongs to.  This information is used to name loggers and to label requests sent to
    remote services.
    """

    def __init__(self, sysname: str, sysabbrev: str, subsysname: str, subsysabbrev: str,
                 version: str):
        self._sysname = sysname
        self._sysabbrev = sysabbrev
        self._subsysname = subsysname
        self._subsysabbrev = subsysabbrev
        self._sysver = version

    @property
    def system_name(self) -> str:
        return self._sysname

    @property
    def system_abbrev(self) -> str:
        return self._sysabbrev

    @property
    def subsystem_name(self) -> str:
        return self._subsysname

    @property
    def subsystem_abbrev(self) -> str:
        return self._subsysabbrev

    @property
    def system_version(self) -> str:
        return self._sysver

    def getSysLogger(self):
        """
        return the default Logger for this (sub)system
        """
        out = logging.getLogger(self.system_abbrev)
        if self.subsystem_abbrev:
            out = out.getChild(self.subsystem_abbrev)
        return out
