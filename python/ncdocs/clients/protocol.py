"""
This module provides the low-level client, :py:class:`DAVProtocolClient`, that sends authenticated
HTTP requests to a Nextcloud server--both to its WebDAV interface (``/remote.php/dav/files/{user}``)
and to its OCS APIs.  It deliberately does not interpret HTTP status codes:  the same code can mean
different things for different WebDAV methods (e.g. 405 in response to MKCOL means the folder
already exists), so the interpretation is left to the callers in :py:mod:`~ncdocs.clients.webdav`
and :py:mod:`~ncdocs.clients.ocs`.  The only error it raises itself is
:py:class:`~ncdocs.exceptions.NetworkError`, for when a request never got a response.
"""
import base64, logging
from collections import namedtuple
from collections.abc import Mapping
from urllib.parse import urlparse, urlunparse, quote

import requests

from ..exceptions import NetworkError, ConfigurationError
from ..paths import normalize_path
from .. import config as cfgmod

DAV_FILES_ROOT = "/remote.php/dav/files"

class RemoteCredentials(namedtuple("RemoteCredentials", "base_url username secret")):
    """
    the location of and the identity to use with the remote file server.  The secret is never
    included in the string representation.
    """
    __slots__ = ()

    def __repr__(self):
        return f"RemoteCredentials(base_url={self.base_url!r}, username={self.username!r}, secret='***')"

    __str__ = __repr__

    @classmethod
    def from_config(cls, config: Mapping, environ: Mapping=None):
        """
        create credentials from a configuration (see :py:func:`ncdocs.config.resolve_credentials`)

        :raises ConfigurationError:  if the base URL, username, or secret is unavailable
        """
        url, user, secret = cfgmod.resolve_credentials(config, environ)
        return cls(instance_base_url(url), user, secret)

def instance_base_url(url: str) -> str:
    """
    return the root URL of the server instance given a URL to it.  Any WebDAV path
    (``/remote.php/...``) and trailing slash are removed.

    :raises ConfigurationError:  if the URL is not an absolute http(s) URL
    """
    u = urlparse(str(url).strip())
    if u.scheme not in ("http", "https") or not u.netloc:
        raise ConfigurationError(f"Not an absolute http(s) URL: {url}")
    path = u.path
    if "/remote.php" in path:
        path = path[:path.index("/remote.php")]
    return urlunparse((u.scheme, u.netloc, path.rstrip('/'), '', '', ''))

def basic_auth_header(credentials: RemoteCredentials) -> str:
    """
    return the value of the HTTP Authorization header for the given credentials
    """
    token = f"{credentials.username}:{credentials.secret}".encode('utf-8')
    return "Basic " + base64.b64encode(token).decode('ascii')


class DAVResponse(namedtuple("DAVResponse", "status headers body")):
    """
    the uninterpreted result of a single request:  the HTTP status code, the response headers,
    and the response body (as bytes).
    """
    __slots__ = ()

    @property
    def ok(self) -> bool:
        return 200 <= self.status < 300

    @property
    def text(self) -> str:
        return self.body.decode('utf-8', errors='replace') if self.body else ''

    @property
    def content_type(self) -> str:
        for name, val in (self.headers or {}).items():
            if name.lower() == 'content-type':
                return val
        return None


class DAVProtocolClient:
    """
    a client for sending requests to a Nextcloud server on behalf of a single user.  Every
    request carries an HTTP Basic Authorization header built from the credentials given at
    construction; no per-request credentials are accepted.  Each call to :py:meth:`request` or
    :py:meth:`send` results in exactly one round trip with no retries.

    :param RemoteCredentials credentials:  the server's base URL and the user identity to
                                  connect as
    :param float timeout:  the number of seconds to wait on the server before giving up on a
                                  request; None means wait indefinitely.
    :param verify:         True to verify the server's site certificate against the OS-installed
                                  CAs, False to skip verification, or the path to a CA bundle.
    :param Session session:  the ``requests`` Session to send requests with; if not provided, a
                                  new one is created.
    :param Logger log:     the Logger to use for messages; if not provided, a default logger
                                  named "ncdocs.dav" will be used.
    """

    def __init__(self, credentials: RemoteCredentials, timeout: float=None, verify=True,
                 session: requests.Session=None, log: logging.Logger=None):
        if not log:
            log = logging.getLogger("ncdocs.dav")
        self.log = log

        if not credentials or not all(credentials):
            raise ConfigurationError("DAVProtocolClient: incomplete credentials provided")
        self._creds = RemoteCredentials(instance_base_url(credentials.base_url),
                                        credentials.username, credentials.secret)
        self.timeout = timeout
        self.verify = verify

        if not session:
            session = requests.Session()
        self._session = session
        self._authhdr = basic_auth_header(self._creds)

    @classmethod
    def from_config(cls, config: Mapping, session: requests.Session=None,
                    log: logging.Logger=None, environ: Mapping=None):
        """
        create a client from a configuration dictionary.  The parameters are read from the
        ``nextcloud`` sub-dictionary (see :py:mod:`ncdocs.config`).

        :raises ConfigurationError:  if required parameters are missing (before any network access)
        """
        config = cfgmod.with_defaults(config)
        creds = RemoteCredentials.from_config(config, environ)
        nccfg = config.get('nextcloud') or {}
        verify = nccfg.get('verify', True)
        if verify and nccfg.get('ca_bundle'):
            verify = nccfg['ca_bundle']
        return cls(creds, nccfg.get('timeout'), verify, session, log)

    @property
    def base_url(self) -> str:
        """the root URL of the server instance"""
        return self._creds.base_url

    @property
    def username(self) -> str:
        """the name of the user whose namespace is being accessed"""
        return self._creds.username

    @property
    def dav_root(self) -> str:
        """
        the URL path to the user's WebDAV namespace (as it appears in PROPFIND responses)
        """
        return urlparse(self.base_url).path + f"{DAV_FILES_ROOT}/{quote(self.username)}"

    def dav_url(self, path: str) -> str:
        """
        return the full WebDAV URL for a path in the user's namespace
        """
        path = normalize_path(path)
        return self.base_url + f"{DAV_FILES_ROOT}/{quote(self.username)}" + quote(path)

    def endpoint_url(self, endpoint: str) -> str:
        """
        return the full URL to a non-WebDAV API endpoint (e.g. an OCS API)
        """
        return self.base_url + '/' + endpoint.lstrip('/')

    def request(self, method: str, path: str, headers: Mapping=None, body=None,
                timeout: float=None) -> DAVResponse:
        """
        send a WebDAV request for a resource in the user's namespace

        :param str method:   the HTTP method (e.g. PUT, GET, MKCOL, PROPFIND)
        :param str   path:   the resource path relative to the user's namespace
        :param dict headers: extra HTTP headers to include
        :param body:         the request body, as bytes, str, or a readable file-like object
        :param float timeout:  override the client's default timeout for this request
        :raises NetworkError:  if a response could not be obtained from the server
        """
        return self.send(method, self.dav_url(path), headers, body, timeout=timeout, ep=path)

    def send(self, method: str, url: str, headers: Mapping=None, body=None, params: Mapping=None,
             timeout: float=None, ep: str=None) -> DAVResponse:
        """
        send a request to an arbitrary URL on the server.  This is used directly for requests
        to OCS APIs.

        :param str method:   the HTTP method
        :param str    url:   the full URL to send the request to
        :param dict headers: extra HTTP headers to include
        :param body:         the request body:  bytes, str, a file-like object, or a dictionary
                             of form fields
        :param dict params:  query parameters to add to the URL
        :param float timeout:  override the client's default timeout for this request
        :param str     ep:   a label for the resource being accessed to use in error messages
                             (default: ``url``)
        :raises NetworkError:  if a response could not be obtained from the server
        """
        hdrs = dict(headers or {})
        hdrs['Authorization'] = self._authhdr
        if timeout is None:
            timeout = self.timeout
        if not ep:
            ep = url

        self.log.debug("%s %s", method, url)
        try:
            resp = self._session.request(method, url, headers=hdrs, data=body, params=params,
                                         timeout=timeout, verify=self.verify)
        except requests.RequestException as ex:
            self.log.debug("%s %s: no response: %s", method, url, str(ex))
            raise NetworkError(f"{method} {ep} failed: {str(ex)}", ep) from ex

        self.log.debug("%s %s: %d", method, url, resp.status_code)
        return DAVResponse(resp.status_code, resp.headers, resp.content)
