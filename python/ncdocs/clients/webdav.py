"""
This module provides the components that carry out WebDAV operations against a user's namespace
on a Nextcloud server, all built on top of a :py:class:`~ncdocs.clients.protocol.DAVProtocolClient`:

:py:class:`FolderProvisioner`
    idempotently ensures that a folder exists (creating it and, when necessary, its parents)
:py:class:`FileTransferEngine`
    uploads files to and downloads files from the server
:py:class:`DirectoryLister`
    lists the contents of a folder, parsing the PROPFIND multistatus response

The module also includes the functions used to parse PROPFIND responses.
"""
import logging, re
from collections import OrderedDict, namedtuple
from collections.abc import Mapping
from email.utils import parsedate_to_datetime
from urllib.parse import unquote, urlsplit
from typing import List

from lxml import etree

from ..exceptions import *
from ..paths import normalize_path, split_path
from .protocol import DAVProtocolClient

DEFAULT_CONTENT_TYPE = "application/octet-stream"

class FolderProvisioner:
    """
    ensures that folders exist on the remote server.  A folder is created with a single MKCOL
    request for its full path; a 405 (Method Not Allowed) response means the folder already
    exists and is treated as success.  Nextcloud refuses (with 409 Conflict) to create a folder
    whose parent does not exist; in that case, the provisioner falls back to creating each
    folder along the path in turn.
    """

    def __init__(self, client: DAVProtocolClient, walk_parents: bool=True, log: logging.Logger=None):
        """
        :param DAVProtocolClient client:  the client to send requests with
        :param bool walk_parents:  if True (default), create missing parent folders when the
                                   server reports them missing
        :param Logger log:  the Logger to use; if not provided, "ncdocs.webdav" is used
        """
        self.cli = client
        self.walk_parents = walk_parents
        if not log:
            log = logging.getLogger("ncdocs.webdav")
        self.log = log

    def ensure_folder(self, path: str):
        """
        ensure that a folder with the given path exists, creating it if necessary.  Calling
        this repeatedly with the same path is harmless.

        :raises ProvisionError:  if the server refused to create the folder
        :raises NetworkError:    if the server could not be reached
        """
        path = normalize_path(path)
        if path == '/':
            return

        resp = self._mkcol(path)
        if resp.status == 409 and self.walk_parents:
            self.log.debug("%s: parent folder missing; creating each folder along path", path)
            parts = path.strip('/').split('/')
            for i in range(1, len(parts)+1):
                folder = "/" + "/".join(parts[:i])
                resp = self._mkcol(folder)
                if not self._exists_after(resp):
                    raise ProvisionError(folder, resp.status, resp.text)
        elif not self._exists_after(resp):
            raise ProvisionError(path, resp.status, resp.text)

    def _mkcol(self, path):
        resp = self.cli.request("MKCOL", path)
        if resp.ok:
            self.log.info("Created folder %s", path)
        elif resp.status == 405:
            self.log.debug("Folder already exists: %s", path)
        return resp

    @staticmethod
    def _exists_after(resp):
        return resp.ok or resp.status == 405


class DownloadedFile(namedtuple("DownloadedFile", "content content_type size")):
    """
    a file retrieved from the remote server:  its bytes, its content (MIME) type, and its
    size in bytes
    """
    __slots__ = ()


class FileTransferEngine:
    """
    uploads files to and downloads files from the remote server.  Content and content types
    are passed through as is.
    """

    def __init__(self, client: DAVProtocolClient, provisioner: FolderProvisioner=None,
                 log: logging.Logger=None):
        self.cli = client
        if not log:
            log = logging.getLogger("ncdocs.webdav")
        self.log = log
        if not provisioner:
            provisioner = FolderProvisioner(client, log=log)
        self.provisioner = provisioner

    def upload(self, path: str, data, content_type: str=None, ensure_folder: bool=True):
        """
        store the given content at the given path, replacing any file already there.

        :param str path:   the remote path to the file to create
        :param     data:   the content to upload, as bytes or a readable binary file-like object
        :param str content_type:  the MIME type of the content (default: application/octet-stream)
        :param bool ensure_folder:  if True (default), make sure the folder that will contain the
                                    file exists first
        :raises ProvisionError:  if the containing folder could not be created
        :raises UploadError:     if the server refused to store the file
        :raises NetworkError:    if the server could not be reached
        """
        path = normalize_path(path)
        folder, name = split_path(path)
        if not name:
            raise InvalidNameError(path, "Upload path is missing a file name")
        if ensure_folder:
            self.provisioner.ensure_folder(folder)

        resp = self.cli.request("PUT", path, {"Content-Type": content_type or DEFAULT_CONTENT_TYPE},
                                data)
        if not resp.ok:
            raise UploadError(path, resp.status, resp.text)
        self.log.info("Uploaded %s", path)

    def download(self, path: str) -> DownloadedFile:
        """
        retrieve the file at the given path

        :raises NotFoundError:  if the file does not exist
        :raises DownloadError:  if the server failed to deliver the file for some other reason
        :raises NetworkError:   if the server could not be reached
        """
        path = normalize_path(path)
        resp = self.cli.request("GET", path)
        if resp.status == 404:
            raise NotFoundError(path, resptext=resp.text)
        if not resp.ok:
            raise DownloadError(path, resp.status, resp.text)

        content = resp.body or b''
        return DownloadedFile(content, resp.content_type or DEFAULT_CONTENT_TYPE, len(content))


class ResourceDescriptor(namedtuple("ResourceDescriptor",
                                    "name path size last_modified content_type is_folder")):
    """
    a description of a file or folder as it appeared in a folder listing
    """
    __slots__ = ()

    def to_json(self) -> Mapping:
        """
        return this description as a JSON-ready dictionary
        """
        return OrderedDict([
            ("name", self.name),
            ("path", self.path),
            ("size", self.size),
            ("lastModified", self.last_modified.isoformat() if self.last_modified else None),
            ("contentType", self.content_type),
            ("isFolder", self.is_folder)
        ])


class DirectoryLister:
    """
    lists the contents of folders on the remote server
    """

    def __init__(self, client: DAVProtocolClient, log: logging.Logger=None):
        self.cli = client
        if not log:
            log = logging.getLogger("ncdocs.webdav")
        self.log = log

    def list(self, path: str='/') -> List[ResourceDescriptor]:
        """
        return descriptions of the files and folders directly inside the folder with the given
        path.  The folder itself is not included.  Malformed entries in the server's response
        are skipped.

        :raises NotFoundError:  if the folder does not exist
        :raises RemoteError:    if the server responded with some other error
        :raises ParseError:     if the server's response is not well-formed XML
        :raises NetworkError:   if the server could not be reached
        """
        path = normalize_path(path)
        resp = self.cli.request("PROPFIND", path,
                                {"Depth": "1", "Content-Type": "application/xml; charset=utf-8"},
                                list_request)
        if resp.status == 404:
            raise NotFoundError(path, resptext=resp.text)
        if not resp.ok:
            raise RemoteError(None, resp.status, path, resp.text)

        out = [d for d in parse_multistatus(resp.body, self.cli.dav_root, ep=path)
                 if d.path != path]
        self.log.debug("%s: found %d items", path, len(out))
        return out


list_request = """<?xml version="1.0" encoding="utf-8"?>
<d:propfind xmlns:d="DAV:">
  <d:prop>
    <d:displayname/>
    <d:getcontentlength/>
    <d:getlastmodified/>
    <d:getcontenttype/>
    <d:resourcetype/>
  </d:prop>
</d:propfind>
"""

_ns = {"d": "DAV:"}
_ok_status_re = re.compile(r'^\S+\s+2\d\d\b')

def _prop_elements(respel):
    # only properties reported with a 2xx status carry values
    props = []
    for propstat in respel.findall("d:propstat", _ns):
        status = propstat.findtext("d:status", None, _ns)
        if status is not None and not _ok_status_re.match(status.strip()):
            continue
        for prop in propstat.findall("d:prop", _ns):
            props.extend(prop)
    return props

def _parse_size(text):
    try:
        return int(text.strip())
    except (AttributeError, ValueError):
        return 0

def _parse_date(text):
    if not text:
        return None
    try:
        return parsedate_to_datetime(text.strip())
    except (TypeError, ValueError, IndexError):
        return None

def href_to_path(href: str, davroot: str=None) -> str:
    """
    convert an href appearing in a PROPFIND response into a path relative to the user's
    WebDAV namespace
    """
    path = unquote(urlsplit(href).path)
    if davroot:
        davroot = unquote(davroot).rstrip('/')
        if path == davroot or path.startswith(davroot+'/'):
            path = path[len(davroot):]
    return '/' + path.strip('/')

def response_to_descriptor(respel, davroot: str=None) -> ResourceDescriptor:
    """
    convert a single PROPFIND ``response`` element into a :py:class:`ResourceDescriptor`,
    or return None if the element has neither an href nor a display name.
    """
    href = respel.findtext("d:href", None, _ns)
    if href is not None:
        href = href.strip() or None

    props = OrderedDict()
    is_folder = False
    for child in _prop_elements(respel):
        if child.tag == "{DAV:}resourcetype":
            is_folder = child.find("d:collection", _ns) is not None
        else:
            props[child.tag] = child.text

    name = (props.get("{DAV:}displayname") or '').strip() or None
    if not href and not name:
        return None

    path = href_to_path(href, davroot) if href else None
    if not name:
        name = unquote(path.rstrip('/').rsplit('/', 1)[-1])

    return ResourceDescriptor(name, path,
                              _parse_size(props.get("{DAV:}getcontentlength")),
                              _parse_date(props.get("{DAV:}getlastmodified")),
                              (props.get("{DAV:}getcontenttype") or '').strip(),
                              is_folder)

def parse_multistatus(content, davroot: str=None, ep: str=None) -> List[ResourceDescriptor]:
    """
    Extract the resource descriptions from a PROPFIND multistatus XML response.  Entries that
    lack both an href and a display name are skipped.

    :param content:      the XML response message to parse (as bytes or str)
    :param str davroot:  the URL path of the user's WebDAV namespace; the paths in the returned
                         descriptors will be relative to it.
    :param str ep:       the path that was listed (for error messages)
    :raises ParseError:  if the content is not well-formed XML
    """
    if isinstance(content, str):
        content = content.encode('utf-8')
    try:
        root = etree.fromstring(content or b'')
    except (etree.XMLSyntaxError, ValueError) as ex:
        raise ParseError("Server returned unparseable XML: "+str(ex), ep) from ex

    out = []
    for respel in root.iter("{DAV:}response"):
        desc = response_to_descriptor(respel, davroot)
        if desc is not None:
            out.append(desc)
    return out
