"""
Customized exceptions that allow code to handle error conditions
"""

class DocStoreException(Exception):
    """
    an exception indicting a problem storing or retrieving documents in the remote file server.

    This class serves as a base class for all exceptions raised in this code
    """

    def __init__(self, message: str=None):
        if not message:
            message = "Unspecified problem accessing the document store"
        super(DocStoreException, self).__init__(message)


class ConfigurationError(DocStoreException):
    """
    an exception indicating that the configuration is missing a required parameter or contains
    an illegal value.  Raised before any attempt is made to contact the remote server.
    """
    pass


class InvalidNameError(DocStoreException, ValueError):
    """
    an exception indicating that a file or folder name could not be turned into a safe remote
    path name (e.g. because it contains nothing but disallowed characters).
    """

    def __init__(self, name: str=None, message: str=None):
        if not message:
            message = "Unable to derive a safe remote name"
            if name is not None:
                message += f" from {name!r}"
        super(InvalidNameError, self).__init__(message)
        self.name = name


class DocStoreServiceError(DocStoreException):
    """
    an exception indicating an error occurred while accessing the remote file server.

    This class serves as a base class for more specific service access errors.
    """

    def __init__(self, message: str=None, ep: str=None, code: int=0, resptext: str=None):
        """
        create the exception

        :param str message:  an explanation of the cause of the error
        :param str ep:       the service endpoint (or remote path) that was being accessed
        :param int code:     the HTTP response code that was returned (if service responded)
        :param str resptext: the erroroneous response body that was returned, as text (if service responded)
        """
        if not message:
            message = "Error accessing file server"
            if ep:
                message += f" at {ep}"
            if code:
                message += f" ({str(code)})"
            if resptext:
                message += f"; unhandlable response:\n{resptext}"
        super(DocStoreServiceError, self).__init__(message)
        self.ep = ep
        self.code = code or 0
        self.response = resptext

    @property
    def retryable(self) -> bool:
        """
        True if repeating the whole operation later might succeed
        """
        return False


class NetworkError(DocStoreServiceError):
    """
    an error indicating a failure communicating with the remote file server.  This error
    typically covers network related errors, like failures to connect, dropped connection, DNS
    errors, timeouts, etc.  The remote server did not get a chance to respond to the request.
    """
    def __init__(self, message: str=None, ep: str=None):
        """
        create the exception

        :param str message:  an explanation of the cause of the error
        :param str ep:       the service endpoint that was being accessed
        """
        if not message:
            message = "File server communication failure"
            if ep:
                message += f" while accessing {ep}"
        super(NetworkError, self).__init__(message, ep)

    @property
    def retryable(self) -> bool:
        return True


class RemoteError(DocStoreServiceError):
    """
    an error indicating that the remote file server responded to a request with an error (i.e.
    a non-2xx status) that was not otherwise classified.
    """

    def __init__(self, message: str=None, code: int=0, ep: str=None, resptext: str=None):
        """
        create the exception
        :param str message:  an explanation of the cause of the error
        :param int code:     the HTTP response code that was returned
        :param str ep:       the remote path or endpoint that was being accessed
        :param str resptext: the erroroneous response body that was returned, as text
        """
        if not message:
            message = "Request refused"
            if code:
                message += f" (HTTP {str(code)})"
            if ep:
                message += f" for {ep}"
        super(RemoteError, self).__init__(message, ep, code, resptext)

    @property
    def retryable(self) -> bool:
        return self.code in (429, 503)


class ProvisionError(RemoteError):
    """
    an error indicating that a folder could not be created on the remote server
    """

    def __init__(self, ep: str=None, code: int=0, resptext: str=None, message: str=None):
        if not message:
            message = "Unable to create folder"
            if ep:
                message += f" {ep}"
            if code:
                message += f" (HTTP {str(code)})"
        super(ProvisionError, self).__init__(message, code, ep, resptext)


class UploadError(RemoteError):
    """
    an error indicating that the remote server refused to store an uploaded file
    """

    def __init__(self, ep: str=None, code: int=0, resptext: str=None, message: str=None):
        if not message:
            message = "Upload failed"
            if ep:
                message += f" for {ep}"
            if code:
                message += f" (HTTP {str(code)})"
            if resptext:
                message += f": {resptext}"
        super(UploadError, self).__init__(message, code, ep, resptext)


class DownloadError(RemoteError):
    """
    an error indicating that the remote server failed to deliver a requested file for a reason
    other than the file not existing.
    """

    def __init__(self, ep: str=None, code: int=0, resptext: str=None, message: str=None):
        if not message:
            message = "Download failed"
            if ep:
                message += f" for {ep}"
            if code:
                message += f" (HTTP {str(code)})"
        super(DownloadError, self).__init__(message, code, ep, resptext)


class NotFoundError(RemoteError):
    """
    an error indicating that the resource (file or folder) requested from the file server does
    not exist.  This exception captures a 404 response.
    """

    def __init__(self, ep: str=None, message: str=None, resptext: str=None, code: int=404):
        """
        create the exception
        :param str ep:       the remote path that was being accessed
        :param str message:  an explanation of the cause of the error
        :param str resptext: the erroroneous response body that was returned, as text
        :param int code:     the HTTP response code that was returned (default: 404)
        """
        if not message:
            message = "Requested resource not found"
            if ep:
                message += f": {ep}"
        super(NotFoundError, self).__init__(message, code, ep, resptext)


class ShareError(RemoteError):
    """
    an error indicating that a public share link could not be created when one was explicitly
    required.  In the default (best-effort) mode, share failures are never raised.
    """

    def __init__(self, ep: str=None, message: str=None, code: int=0, resptext: str=None):
        if not message:
            message = "Unable to create public share link"
            if ep:
                message += f" for {ep}"
        super(ShareError, self).__init__(message, code, ep, resptext)


class ParseError(DocStoreServiceError):
    """
    an error that indicates that the remote file server responded with content that could not
    be parsed.  The code may reflect a successful operation, but the returned content cannot be
    processed (e.g. due to XML format errors).
    """

    def __init__(self, message: str=None, ep: str=None, resptext: str=None, code: int=0):
        """
        create the exception
        :param str message:  an explanation of the cause of the error
        :param str ep:       the service endpoint that was being accessed
        :param str resptext: the erroroneous response body that was returned, as text
        :param int code:     the HTTP response code that was returned
        """
        if not message:
            message = "Unparseable content returned from file server"
            if ep:
                message += f" while accessing {ep}"
        super(ParseError, self).__init__(message, ep, code, resptext)
