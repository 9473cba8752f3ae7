"""
Utilities for loading configuration data and for setting up logging based on it.

Configuration in hew is always a plain dictionary (a :py:class:`~collections.abc.Mapping`) whose
recognized parameters are documented by the class that consumes it.  This module provides
functions for reading such dictionaries from files (YAML or JSON), for combining a set of
defaults with overrides, and for configuring the Python logging system.
"""
import os, sys, json, logging
from collections.abc import Mapping
from copy import deepcopy

import yaml

from . import HewException

class ConfigurationException(HewException):
    """
    an exception indicating a missing or invalid configuration parameter
    """

    def __init__(self, message: str=None, cause: Exception=None):
        if not message:
            message = "Configuration error"
            if cause:
                message += ": " + str(cause)
        super(ConfigurationException, self).__init__(message, cause)

def load_from_file(configfile: str) -> Mapping:
    """
    read the configuration from the given file and return it as a dictionary.
    The file format is determined by its filename extension:  ".json" files are read as JSON;
    all others are parsed as YAML (of which JSON is a subset).

    :param str configfile:  the path to the configuration file
    :raises ConfigurationException:  if the file contents cannot be parsed or does not contain
                                     a dictionary
    :raises OSError:  if the file cannot be opened
    """
    with open(configfile) as fd:
        try:
            if configfile.endswith('.json'):
                out = json.load(fd)
            else:
                out = yaml.safe_load(fd)
        except (ValueError, yaml.YAMLError) as ex:
            raise ConfigurationException("%s: config parsing error: %s" % (configfile, str(ex)),
                                         cause=ex) from ex

    if out is None:
        out = {}
    if not isinstance(out, Mapping):
        raise ConfigurationException("%s: config file does not contain a dictionary" % configfile)
    return out

def merge_config(primary: Mapping, defconf: Mapping) -> Mapping:
    """
    merge two configurations, returning a new dictionary.  Values in ``primary`` override
    those in ``defconf``; dictionary values are merged recursively.  Neither input is modified.
    """
    out = deepcopy(defconf)
    for key, val in primary.items():
        if isinstance(val, Mapping) and isinstance(out.get(key), Mapping):
            out[key] = merge_config(val, out[key])
        else:
            out[key] = deepcopy(val)
    return out

LOG_FORMAT = "%(asctime)s %(name)s %(levelname)s: %(message)s"
_log_handler = None

def configure_log(logfile: str=None, level: int=None, format: str=None, config: Mapping=None,
                  addstderr: bool=False):
    """
    configure the root logger to write messages to a file and/or standard error.

    The following parameters are recognized in ``config`` (explicit arguments take precedence):

    ``logfile``
        (str) the path of the file to write messages to
    ``loglevel``
        (int or str) the minimum message level to record (default: DEBUG)
    ``logformat``
        (str) the format template for messages

    :param str   logfile:  the file to record messages to
    :param int     level:  the logging level threshold
    :param str    format:  the message format template
    :param Mapping config: configuration parameters (see above)
    :param bool addstderr: if True, also copy messages to standard error
    """
    global _log_handler
    if not config:
        config = {}
    if not logfile:
        logfile = config.get('logfile')
    if level is None:
        level = config.get('loglevel', logging.DEBUG)
        if isinstance(level, str):
            level = logging.getLevelName(level.upper())
            if not isinstance(level, int):
                raise ConfigurationException("loglevel: unrecognized level name: " +
                                             str(config.get('loglevel')))
    if not format:
        format = config.get('logformat', LOG_FORMAT)
    frmtr = logging.Formatter(format)

    rootlog = logging.getLogger()
    rootlog.setLevel(level)

    if logfile:
        logdir = os.path.dirname(logfile)
        if logdir and not os.path.isdir(logdir):
            raise ConfigurationException(logdir + ": log directory does not exist")
        if _log_handler:
            rootlog.removeHandler(_log_handler)
            _log_handler.close()
        _log_handler = logging.FileHandler(logfile)
        _log_handler.setLevel(level)
        _log_handler.setFormatter(frmtr)
        rootlog.addHandler(_log_handler)

    if addstderr:
        hdlr = logging.StreamHandler(sys.stderr)
        hdlr.setLevel(level)
        hdlr.setFormatter(frmtr)
        rootlog.addHandler(hdlr)

    if not rootlog.handlers:
        rootlog.addHandler(logging.NullHandler())
