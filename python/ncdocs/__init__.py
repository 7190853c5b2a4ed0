"""
ncdocs:  filing, retrieving, and sharing documents on a Nextcloud file server.

Documents are stored via the server's WebDAV interface under a path derived from the document's
type, its year, and its original file name (see :py:mod:`ncdocs.paths`), and can be shared
publicly via the server's OCS file-sharing API.  The main entry point is
:py:class:`~ncdocs.service.DocumentStoreService`; :py:mod:`ncdocs.flask` wraps it as a web
service, and :py:mod:`ncdocs.cli` as a command-line tool.
"""
from .version import __version__
from .exceptions import *
