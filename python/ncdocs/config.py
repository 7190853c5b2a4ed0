"""
Utilities for loading and applying configuration data.

A configuration is a (possibly nested) dictionary.  It can be read from a YAML or JSON file with
:py:func:`load_from_file`, combined with defaults via :py:func:`merge_config`, and used to set up
logging via :py:func:`configure_log`.  The credentials needed to talk to the remote file server
are pulled out of a configuration (or the process environment) with
:py:func:`resolve_credentials`.

The following top-level parameters are recognized by the rest of the package:

``nextcloud``
    (dict) _required_.  the parameters for connecting to the remote file server:
    ``url``, ``username``, ``password`` (all required, but may be given via the environment),
    ``timeout``, ``share_timeout``, ``ca_bundle``, and ``verify``.
``root_folder``
    (str) _optional_.  the top folder under which documents are filed (default: ``documents``).
``default_document_type``
    (str) _optional_.  the document type to file uploads under when none is given
    (default: ``other``).
``share``
    (dict) _optional_.  ``enabled`` (default: True) and ``require`` (default: False) control the
    creation of public share links after upload.
``max_upload_size``
    (int) _optional_.  the largest upload (in bytes) the web gateway will accept.
``logfile``, ``loglevel``, ``logdir``
    _optional_.  where and how verbosely to log.
"""
import os, sys, json, logging
from copy import deepcopy
from collections.abc import Mapping

import yaml

from .exceptions import ConfigurationError

CREDENTIAL_ENV_VARS = {
    "url":      "NEXTCLOUD_URL",
    "username": "NEXTCLOUD_USERNAME",
    "password": "NEXTCLOUD_PASSWORD",
}

DEFAULTS = {
    "nextcloud": {
        "timeout": 30.0,
        "share_timeout": 10.0
    },
    "root_folder": "documents",
    "default_document_type": "other",
    "share": {
        "enabled": True,
        "require": False
    }
}

LOG_FORMAT = "%(asctime)s %(name)s %(levelname)s: %(message)s"

global_logdir = None
global_logfile = None
_log_handler = None

def load_from_file(configfile: str) -> Mapping:
    """
    read the configuration from the given file and return it as a dictionary.  The file will be
    parsed as YAML unless its name ends in ".json".

    :raises ConfigurationError:  if the file does not contain a dictionary
    :raises OSError:   if the file cannot be opened
    :raises ValueError:  if the file contents contain syntax errors
    """
    with open(configfile) as fd:
        if configfile.endswith('.json'):
            data = json.load(fd)
        else:
            data = yaml.safe_load(fd)

    if data is None:
        data = {}
    if not isinstance(data, Mapping):
        raise ConfigurationError(f"{configfile}: configuration does not contain a dictionary")
    return data

def merge_config(primary: Mapping, defconf: Mapping) -> Mapping:
    """
    merge two configurations, giving precedence to the values in ``primary``.  Sub-dictionaries
    are merged recursively.  Neither input is changed.

    :param dict primary:  the dominant configuration
    :param dict defconf:  the configuration providing default values
    :return:  the merged configuration
    """
    out = deepcopy(dict(defconf))
    for key, val in primary.items():
        if isinstance(val, Mapping) and isinstance(out.get(key), Mapping):
            out[key] = merge_config(val, out[key])
        else:
            out[key] = deepcopy(val)
    return out

def with_defaults(config: Mapping) -> Mapping:
    """
    return a copy of the given configuration with the built-in defaults filled in
    """
    return merge_config(config or {}, DEFAULTS)

def resolve_credentials(config: Mapping, environ: Mapping=None):
    """
    extract the remote file server's base URL, username, and password from the ``nextcloud``
    section of the given configuration, falling back to the ``NEXTCLOUD_URL``,
    ``NEXTCLOUD_USERNAME``, and ``NEXTCLOUD_PASSWORD`` environment variables.

    :param dict  config:  the configuration to draw from
    :param dict environ:  the environment to consult (default: ``os.environ``)
    :return:  a 3-tuple of (url, username, password)
    :raises ConfigurationError:  if any of the three values is not available
    """
    if environ is None:
        environ = os.environ
    nccfg = config.get("nextcloud") or {}
    if not isinstance(nccfg, Mapping):
        raise ConfigurationError("Config param, nextcloud, not a dictionary: "+str(type(nccfg)))

    out = []
    missing = []
    for param, envvar in CREDENTIAL_ENV_VARS.items():
        val = nccfg.get(param) or environ.get(envvar)
        if not val:
            missing.append(f"nextcloud.{param} (or {envvar})")
        out.append(val)

    if missing:
        raise ConfigurationError("Missing required config parameters: " + ", ".join(missing))
    return tuple(out)

def configure_log(logfile: str=None, level: int=None, format: str=None, config: Mapping=None,
                  addstderr=False):
    """
    configure the root logger to write messages to a file and/or standard error.  Values
    given as arguments override those found in ``config`` (via the ``logfile``, ``logdir``,
    and ``loglevel`` parameters).

    :param str  logfile:  the path of the file to write messages to; a relative path is taken
                          to be relative to ``logdir``.
    :param int    level:  the minimum level of messages to record
    :param str   format:  the format for log messages
    :param dict  config:  the configuration to consult for unset values
    :param addstderr:     if True (or a format string), also send messages to standard error
    """
    global global_logdir, global_logfile, _log_handler
    if not config:
        config = {}
    if not logfile:
        logfile = config.get('logfile')
    if level is None:
        level = config.get('loglevel', logging.INFO)
    if isinstance(level, str):
        level = logging.getLevelName(level.upper())
        if not isinstance(level, int):
            raise ConfigurationError("Config param, loglevel, not a recognized level")
    if not format:
        format = LOG_FORMAT

    rootlog = logging.getLogger()
    rootlog.setLevel(level)

    if logfile:
        global_logdir = config.get('logdir', global_logdir)
        if not os.path.isabs(logfile) and global_logdir:
            logfile = os.path.join(global_logdir, logfile)
        global_logfile = logfile

        if _log_handler:
            rootlog.removeHandler(_log_handler)
            _log_handler.close()
        _log_handler = logging.FileHandler(logfile)
        _log_handler.setLevel(level)
        _log_handler.setFormatter(logging.Formatter(format))
        rootlog.addHandler(_log_handler)

    if addstderr:
        if not isinstance(addstderr, str):
            addstderr = format
        hdlr = logging.StreamHandler(sys.stderr)
        hdlr.setLevel(level)
        hdlr.setFormatter(logging.Formatter(addstderr))
        rootlog.addHandler(hdlr)

    return rootlog
