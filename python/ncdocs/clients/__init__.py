"""
Clients for accessing the remote file server's APIs:  the WebDAV interface and the OCS sharing API
"""
from .protocol import RemoteCredentials, DAVResponse, DAVProtocolClient
from .webdav import (FolderProvisioner, FileTransferEngine, DirectoryLister, DownloadedFile,
                     ResourceDescriptor)
from .ocs import ShareLinkIssuer, ShareRecord
