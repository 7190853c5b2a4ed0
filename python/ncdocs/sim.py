"""
A simulated Nextcloud server for testing and demonstrating the document store clients.
:py:class:`SimNextcloudSession` stands in for a ``requests.Session``, answering WebDAV (PUT, GET,
MKCOL, PROPFIND) and OCS share requests from an in-memory file tree.
"""
import base64, json
from datetime import datetime, timezone
from email.utils import format_datetime
from urllib.parse import urlsplit, quote, unquote
from xml.sax.saxutils import escape

import requests

BASE_URL = "https://cloud.example.com"
USER = "alice"
PASSWORD = "s3cret"

class SimResponse:
    """
    the parts of a ``requests.Response`` that the clients use
    """
    def __init__(self, status_code, content=b'', headers=None):
        self.status_code = status_code
        if isinstance(content, str):
            content = content.encode('utf-8')
        self.content = content
        self.headers = headers or {}

class SimNextcloudSession:
    """
    an in-memory Nextcloud server that a :py:class:`~ncdocs.clients.protocol.DAVProtocolClient`
    can send its requests to.

    Failures can be injected per HTTP method:  a method listed in ``unreachable`` raises a
    ``requests.ConnectionError``, and one mapped to a code in ``statuses`` gets that status in
    reply.  Every request is recorded in ``requests`` as a tuple of (method, url, headers, timeout).
    """

    def __init__(self, base_url=BASE_URL, user=USER, password=PASSWORD):
        self.base_url = base_url
        self.davroot = urlsplit(base_url).path + "/remote.php/dav/files/" + quote(user)
        self.auth = "Basic " + base64.b64encode(f"{user}:{password}".encode('utf-8')).decode('ascii')
        self.folders = {"/": datetime(2024, 1, 1, tzinfo=timezone.utc)}
        self.files = {}
        self.shares = []
        self.share_format = "json"
        self.requests = []
        self.unreachable = set()
        self.statuses = {}

    def request(self, method, url, headers=None, data=None, params=None, timeout=None, verify=True):
        headers = dict(headers or {})
        self.requests.append((method, url, headers, timeout))
        if method in self.unreachable:
            raise requests.ConnectionError("sim: connection refused")
        if method in self.statuses:
            return SimResponse(self.statuses[method], "sim: injected failure")
        if headers.get('Authorization') != self.auth:
            return SimResponse(401, "Unauthorized")

        path = urlsplit(url).path
        if path == self.davroot or path.startswith(self.davroot+'/'):
            path = '/' + unquote(path[len(self.davroot):]).strip('/')
            handler = getattr(self, "do_"+method.upper(), None)
            if not handler:
                return SimResponse(501)
            return handler(path, headers, data)

        if method == "POST" and path.endswith("/ocs/v2.php/apps/files_sharing/api/v1/shares"):
            return self.share(headers, data)
        return SimResponse(404, "Not Found")

    def methods(self):
        return [r[0] for r in self.requests]

    def add_folder(self, path):
        parts = path.strip('/').split('/')
        for i in range(1, len(parts)+1):
            self.folders.setdefault('/'+'/'.join(parts[:i]), datetime(2024, 1, 2, tzinfo=timezone.utc))

    def add_file(self, path, content, content_type="application/octet-stream"):
        self.add_folder(path.rsplit('/', 1)[0] or '/')
        self.files[path] = (content, content_type, datetime(2024, 3, 1, 9, 0, tzinfo=timezone.utc))

    def _parent(self, path):
        return path.rsplit('/', 1)[0] or '/'

    def do_MKCOL(self, path, headers, data):
        if path in self.folders or path in self.files:
            return SimResponse(405, "The resource you tried to create already exists")
        if self._parent(path) not in self.folders:
            return SimResponse(409, "Parent node does not exist")
        self.folders[path] = datetime.now(timezone.utc)
        return SimResponse(201)

    def do_PUT(self, path, headers, data):
        if self._parent(path) not in self.folders:
            return SimResponse(409, "Parent node does not exist")
        if path in self.folders:
            return SimResponse(405)
        if hasattr(data, 'read'):
            data = data.read()
        if isinstance(data, str):
            data = data.encode('utf-8')
        existed = path in self.files
        self.files[path] = (data or b'', headers.get('Content-Type'), datetime.now(timezone.utc))
        return SimResponse(204 if existed else 201)

    def do_GET(self, path, headers, data):
        if path not in self.files:
            return SimResponse(404, "File not found")
        content, ctype, mtime = self.files[path]
        return SimResponse(200, content, {"Content-Type": ctype, "Content-Length": str(len(content))})

    def do_PROPFIND(self, path, headers, data):
        if path in self.files:
            entries = [self._file_entry(path)]
        elif path in self.folders:
            entries = [self._folder_entry(path)]
            for f in sorted(self.folders):
                if f != path and self._parent(f) == path:
                    entries.append(self._folder_entry(f))
            for f in sorted(self.files):
                if self._parent(f) == path:
                    entries.append(self._file_entry(f))
        else:
            return SimResponse(404, "Resource not found")

        body = '<?xml version="1.0"?>\n<d:multistatus xmlns:d="DAV:">' + "".join(entries) + \
               '</d:multistatus>'
        return SimResponse(207, body, {"Content-Type": "application/xml; charset=utf-8"})

    def _href(self, path, folder=False):
        href = self.davroot + quote(path)
        if folder and not href.endswith('/'):
            href += '/'
        return escape(href)

    def _folder_entry(self, path):
        name = path.rsplit('/', 1)[-1]
        return (f'<d:response><d:href>{self._href(path, True)}</d:href><d:propstat><d:prop>'
                f'<d:displayname>{escape(name)}</d:displayname>'
                f'<d:getlastmodified>{format_datetime(self.folders[path], usegmt=True)}</d:getlastmodified>'
                '<d:resourcetype><d:collection/></d:resourcetype>'
                '</d:prop><d:status>HTTP/1.1 200 OK</d:status></d:propstat>'
                '<d:propstat><d:prop><d:getcontentlength/><d:getcontenttype/></d:prop>'
                '<d:status>HTTP/1.1 404 Not Found</d:status></d:propstat></d:response>')

    def _file_entry(self, path):
        content, ctype, mtime = self.files[path]
        return (f'<d:response><d:href>{self._href(path)}</d:href><d:propstat><d:prop>'
                f'<d:displayname>{escape(path.rsplit("/", 1)[-1])}</d:displayname>'
                f'<d:getcontentlength>{len(content)}</d:getcontentlength>'
                f'<d:getlastmodified>{format_datetime(mtime, usegmt=True)}</d:getlastmodified>'
                f'<d:getcontenttype>{escape(ctype or "")}</d:getcontenttype>'
                '<d:resourcetype/>'
                '</d:prop><d:status>HTTP/1.1 200 OK</d:status></d:propstat></d:response>')

    def share(self, headers, data):
        if headers.get('OCS-APIRequest') != "true":
            return SimResponse(997, "OCS API request header missing")
        data = data or {}
        path = data.get('path')
        if path not in self.files and path not in self.folders:
            return self._ocs_reply(404, "Wrong path, file/folder doesn't exist", {}, 404)

        token = "Tok%04d" % (len(self.shares)+1)
        self.shares.append((path, data.get('shareType'), data.get('permissions'), token))
        return self._ocs_reply(200, "OK", {"id": str(len(self.shares)), "token": token,
                                           "url": f"{self.base_url}/s/{token}"})

    def _ocs_reply(self, statuscode, message, data, http=200):
        if self.share_format == "xml":
            items = "".join(f"<{k}>{escape(v)}</{k}>" for k, v in data.items())
            body = (f'<?xml version="1.0"?>\n<ocs><meta><status>{"ok" if statuscode == 200 else "failure"}'
                    f'</status><statuscode>{statuscode}</statuscode><message>{escape(message)}</message>'
                    f'</meta><data>{items}</data></ocs>')
            return SimResponse(http, body, {"Content-Type": "text/xml; charset=UTF-8"})

        body = {"ocs": {"meta": {"status": "ok" if statuscode == 200 else "failure",
                                 "statuscode": statuscode, "message": message},
                        "data": data}}
        return SimResponse(http, json.dumps(body), {"Content-Type": "application/json; charset=utf-8"})
