"""
The document store service:  the entry point for storing documents in, and retrieving them from,
the remote file server.

An upload is driven by the :py:class:`UploadOrchestrator` through a fixed sequence of stages:

  ``received`` -> ``folder ensured`` -> ``uploaded`` -> ``share attempted`` -> ``done``

A failure while ensuring the folder or uploading the file ends the sequence in the ``failed``
state; no further stages are attempted and nothing is cleaned up.  Creating the public share
link is best-effort:  if it fails, the upload still succeeds but without a share URL (unless a
share link was explicitly required).

:py:class:`DocumentStoreService` wires the orchestrator and the underlying clients together from
a configuration and is what the web gateway (:py:mod:`ncdocs.flask`) and the command-line
interface (:py:mod:`ncdocs.cli`) use.
"""
import logging
from collections import OrderedDict, namedtuple
from collections.abc import Mapping
from datetime import datetime, timezone
from typing import List, Optional

from .exceptions import *
from .paths import build_path, split_path
from .config import with_defaults
from .clients.protocol import DAVProtocolClient
from .clients.webdav import (FolderProvisioner, FileTransferEngine, DirectoryLister, DownloadedFile,
                             ResourceDescriptor, DEFAULT_CONTENT_TYPE)
from .clients.ocs import ShareLinkIssuer

# Upload stages:
#
RECEIVED        = "received"         # the request has been accepted and its remote path computed
FOLDER_ENSURED  = "folder ensured"   # the folder the file goes into is known to exist
UPLOADED        = "uploaded"         # the file has been stored on the remote server
SHARE_ATTEMPTED = "share attempted"  # creation of a public share link was tried
DONE            = "done"             # the upload completed successfully
FAILED          = "failed"           # the upload could not be completed

class UploadRequest:
    """
    a file to be uploaded along with the metadata describing it.  A request is meant to be
    handed to :py:meth:`UploadOrchestrator.upload` once.

    :param data:               the file content, as bytes or a readable binary file-like object
    :param str file_name:      the name of the file as supplied by the user
    :param str mime_type:      the declared MIME type of the file
    :param str title:          a title for the document (default: the file name)
    :param str description:    a description of the document
    :param str document_type:  the category to file the document under (e.g. "receipt")
    :param str client_ref:     the identifier of the client the document belongs to
    :param str obligation_ref: the identifier of the obligation the document supports
    :param int year:           the year to file the document under (default: the current year)
    :param bool require_share: if True, fail the upload if a share link cannot be created;
                               if None, the orchestrator's default applies.
    """

    def __init__(self, data, file_name: str, mime_type: str=None, title: str=None,
                 description: str=None, document_type: str=None, client_ref: str=None,
                 obligation_ref: str=None, year: int=None, require_share: bool=None):
        self.data = data
        self.file_name = file_name
        self.mime_type = mime_type or None
        self.title = title or None
        self.description = description or None
        self.document_type = document_type or None
        self.client_ref = client_ref or None
        self.obligation_ref = obligation_ref or None
        self.year = year
        self.require_share = require_share

    @property
    def size(self) -> Optional[int]:
        """
        the number of bytes to be uploaded, or None if it cannot be determined
        """
        if hasattr(self.data, '__len__'):
            return len(self.data)
        if hasattr(self.data, 'seek') and hasattr(self.data, 'tell'):
            try:
                pos = self.data.tell()
                self.data.seek(0, 2)
                end = self.data.tell()
                self.data.seek(pos)
                return end - pos
            except (OSError, ValueError):
                return None
        return None


class UploadResult(namedtuple("UploadResult",
                              "success remote_path share_url error_kind message document state failed_at")):
    """
    the outcome of an upload.  On success, ``remote_path`` gives where the file was stored,
    ``share_url`` its public link (or None), and ``document`` a snapshot of the document's
    metadata.  ``state`` is the final state of the upload, either ``done`` or ``failed``.  On
    failure, ``error_kind`` names the class of error, ``message`` explains it, and ``failed_at``
    gives the stage the upload had reached when it failed.
    """
    __slots__ = ()

    def to_json(self) -> Mapping:
        """
        return this result as a JSON-ready dictionary of the form
        ``{success, document?, nextcloudPath?, shareUrl?, error?, errorKind?}``
        """
        out = OrderedDict([("success", self.success)])
        if self.success:
            out['document'] = self.document
            out['nextcloudPath'] = self.remote_path
            if self.share_url:
                out['shareUrl'] = self.share_url
        else:
            out['error'] = self.message
            out['errorKind'] = self.error_kind
        return out

def error_message(ex: Exception) -> str:
    """
    return a message for the given error that is suitable for showing to a user.  It makes
    clear whether the file server could not be reached or rejected the request.
    """
    if isinstance(ex, NetworkError):
        return f"File server unreachable: {str(ex)}"
    if isinstance(ex, RemoteError):
        return f"File server rejected the request: {str(ex)}"
    return str(ex)


class UploadOrchestrator:
    """
    drives an upload through its stages:  computing the remote path, ensuring its folder exists,
    storing the file, and attempting to create a public share link.

    :param FolderProvisioner provisioner:  used to ensure the destination folder exists
    :param FileTransferEngine transfer:    used to store the file
    :param ShareLinkIssuer sharer:  used to create share links; if None, no links are created
    :param str root_folder:         the top folder documents are filed under
    :param str default_document_type:  the document type used when a request does not give one
    :param bool require_share:      the default for whether a share link is required
    :param Logger log:              the Logger to use; if not provided, "ncdocs.service" is used
    """

    def __init__(self, provisioner: FolderProvisioner, transfer: FileTransferEngine,
                 sharer: ShareLinkIssuer=None, root_folder: str="documents",
                 default_document_type: str="other", require_share: bool=False,
                 log: logging.Logger=None):
        self.provisioner = provisioner
        self.transfer = transfer
        self.sharer = sharer
        self.root_folder = root_folder
        self.default_document_type = default_document_type
        self.require_share = require_share
        if not log:
            log = logging.getLogger("ncdocs.service")
        self.log = log

    def upload(self, req: UploadRequest, when: datetime=None) -> UploadResult:
        """
        upload a file and return the outcome.  Errors are reported via the returned result
        rather than raised.

        :param UploadRequest req:  the file and its metadata
        :param datetime     when:  the time to record as the upload time (default: now)
        """
        if when is None:
            when = datetime.now(timezone.utc)
        state = RECEIVED
        doctype = req.document_type or self.default_document_type
        year = req.year or when.year
        mime_type = req.mime_type or DEFAULT_CONTENT_TYPE
        size = req.size

        try:
            path = build_path(doctype, year, req.file_name, self.root_folder, when)
        except InvalidNameError as ex:
            return self._failed(state, ex)
        folder, _ = split_path(path)
        self.log.debug("%s: %s -> %s", req.file_name, state, path)

        try:
            self.provisioner.ensure_folder(folder)
            state = self._advance(path, state, FOLDER_ENSURED)

            self.transfer.upload(path, req.data, mime_type, ensure_folder=False)
            state = self._advance(path, state, UPLOADED)
        except DocStoreServiceError as ex:
            return self._failed(state, ex, path)

        require = self.require_share if req.require_share is None else req.require_share
        share_url = None
        if self.sharer:
            if require:
                try:
                    share_url = self.sharer.create_share(path).public_url
                except DocStoreException as ex:
                    if not isinstance(ex, ShareError):
                        ex = ShareError(path, f"Unable to create required share link: {str(ex)}",
                                        getattr(ex, 'code', 0))
                    state = self._advance(path, state, SHARE_ATTEMPTED)
                    return self._failed(state, ex, path)
            else:
                share_url = self.sharer.create_public_share(path)
        elif require:
            return self._failed(state, ShareError(path, "Share link creation is not enabled"), path)
        state = self._advance(path, state, SHARE_ATTEMPTED)

        doc = OrderedDict([
            ("title", req.title or req.file_name),
            ("description", req.description),
            ("document_type", doctype),
            ("client_id", req.client_ref),
            ("obligation_id", req.obligation_ref),
            ("file_name", req.file_name),
            ("file_path", path),
            ("file_size", size),
            ("mime_type", mime_type),
            ("uploaded_at", when.isoformat())
        ])
        state = self._advance(path, state, DONE)
        self.log.info("Stored %s at %s%s", req.file_name, path,
                      " (shared)" if share_url else "")
        return UploadResult(True, path, share_url, None, None, doc, state, None)

    def _advance(self, path, fromstate, tostate):
        self.log.debug("%s: %s -> %s", path, fromstate, tostate)
        return tostate

    def _failed(self, state, ex, path=None):
        self.log.error("Upload failed while %s%s: %s", state, f" ({path})" if path else "", str(ex))
        return UploadResult(False, path, None, type(ex).__name__, error_message(ex), None, FAILED, state)


class DocumentStoreService:
    """
    the library entry point for storing, retrieving, listing, and sharing documents on the
    remote file server.  See :py:mod:`ncdocs.config` for the configuration parameters it uses.

    :param dict config:   the configuration for the service
    :param DAVProtocolClient client:  the client to use to talk to the server; if not provided,
                          one is created from ``config``.
    :param Logger log:    the Logger to use; if not provided, "ncdocs.service" is used
    :raises ConfigurationError:  if the server URL or credentials are not configured
    """

    def __init__(self, config: Mapping, client: DAVProtocolClient=None, log: logging.Logger=None):
        self.cfg = with_defaults(config)
        if not log:
            log = logging.getLogger("ncdocs.service")
        self.log = log

        if not client:
            client = DAVProtocolClient.from_config(self.cfg, log=log.getChild("dav"))
        self.client = client

        self.provisioner = FolderProvisioner(client, log=log.getChild("webdav"))
        self.transfer = FileTransferEngine(client, self.provisioner, log=log.getChild("webdav"))
        self.lister = DirectoryLister(client, log=log.getChild("webdav"))

        sharecfg = self.cfg.get('share') or {}
        self.sharer = None
        if sharecfg.get('enabled', True):
            self.sharer = ShareLinkIssuer(client, (self.cfg.get('nextcloud') or {}).get('share_timeout'),
                                          log=log.getChild("ocs"))

        self.orchestrator = UploadOrchestrator(self.provisioner, self.transfer, self.sharer,
                                               self.cfg.get('root_folder', 'documents'),
                                               self.cfg.get('default_document_type', 'other'),
                                               bool(sharecfg.get('require', False)), log)

    def upload(self, req: UploadRequest) -> UploadResult:
        """
        upload a document, filing it according to its type and year.  See
        :py:meth:`UploadOrchestrator.upload`.
        """
        return self.orchestrator.upload(req)

    def upload_file(self, data, file_name: str, mime_type: str=None, **metadata) -> UploadResult:
        """
        upload a document given its content, name, and type.  Other keywords are passed to
        :py:class:`UploadRequest`.
        """
        return self.upload(UploadRequest(data, file_name, mime_type, **metadata))

    def download(self, path: str) -> DownloadedFile:
        """
        retrieve the file with the given path

        :raises NotFoundError:  if the file does not exist
        :raises DownloadError:  if the file could not be retrieved for some other reason
        """
        return self.transfer.download(path)

    def list_folder(self, path: str='/') -> List[ResourceDescriptor]:
        """
        list the contents of the folder with the given path
        """
        return self.lister.list(path)

    def ensure_folder(self, path: str):
        """
        make sure the folder with the given path exists
        """
        self.provisioner.ensure_folder(path)

    def create_share(self, path: str) -> Optional[str]:
        """
        create a public, read-only link to an existing file, returning its URL or None if
        the link could not be created
        """
        if not self.sharer:
            return None
        return self.sharer.create_public_share(path)

    def test_connection(self) -> bool:
        """
        return True if the file server can be reached and accepts the configured credentials
        """
        try:
            self.lister.list('/')
            return True
        except DocStoreServiceError as ex:
            self.log.warning("File server connection test failed: %s", str(ex))
            return False
