"""
This module provides a client class, :py:class:`ShareLinkIssuer`, for creating public, read-only
share links via Nextcloud's OCS file-sharing API.  Creating a share link is treated as an
enhancement to an upload, so :py:meth:`ShareLinkIssuer.create_public_share` never raises; callers
that need a link can use :py:meth:`ShareLinkIssuer.create_share` instead.

The OCS API answers in JSON when asked to (via the ``Accept`` header) and in XML otherwise;
:py:func:`parse_share_response` handles both.
"""
import json, logging
from collections import OrderedDict, namedtuple
from collections.abc import Mapping
from typing import Optional

from lxml import etree

from ..exceptions import *
from ..paths import normalize_path
from .protocol import DAVProtocolClient

SHARES_ENDPOINT = "ocs/v2.php/apps/files_sharing/api/v1/shares"
SHARE_TYPE_PUBLIC_LINK = 3
PERM_READ = 1

# OCS v1 reports success as 100, v2 as 200
OCS_OK_CODES = (100, 200)

class ShareRecord(namedtuple("ShareRecord",
                             "resource_path public_url permissions password_protected token")):
    """
    a description of a public share created on the remote server.  The share itself is owned
    by the remote server.
    """
    __slots__ = ()


class ShareLinkIssuer:
    """
    creates public, read-only, password-less share links for files already stored on the
    remote server.

    :param DAVProtocolClient client:  the client to send requests with
    :param float timeout:  the number of seconds to wait for the sharing API to respond; this is
                           applied independently of the client's default timeout.
    :param Logger log:     the Logger to use; if not provided, "ncdocs.ocs" is used
    """

    def __init__(self, client: DAVProtocolClient, timeout: float=None, log: logging.Logger=None):
        self.cli = client
        self.timeout = timeout
        if not log:
            log = logging.getLogger("ncdocs.ocs")
        self.log = log

    def create_share(self, path: str) -> ShareRecord:
        """
        create a public, read-only link to the resource with the given path

        :raises ShareError:    if the server refused to create the share or did not return a URL
        :raises ParseError:    if the server's response could not be parsed
        :raises NetworkError:  if the server could not be reached
        """
        path = normalize_path(path)
        form = OrderedDict([
            ("path", path),
            ("shareType", str(SHARE_TYPE_PUBLIC_LINK)),
            ("permissions", str(PERM_READ))
        ])
        resp = self.cli.send("POST", self.cli.endpoint_url(SHARES_ENDPOINT),
                             {"OCS-APIRequest": "true", "Accept": "application/json"}, form,
                             timeout=self.timeout, ep=path)
        if not resp.ok:
            raise ShareError(path, code=resp.status, resptext=resp.text)

        info = parse_share_response(resp.body, resp.content_type, path)
        if info['statuscode'] is not None and info['statuscode'] not in OCS_OK_CODES:
            raise ShareError(path, "Share creation refused (%s): %s" %
                             (info['statuscode'], info['message'] or "no reason given"),
                             resp.status, resp.text)

        url = info['url']
        if not url and info['token']:
            url = f"{self.cli.base_url}/index.php/s/{info['token']}"
        if not url:
            raise ShareError(path, "Share response did not include a URL", resp.status, resp.text)

        self.log.info("Created public share link for %s", path)
        return ShareRecord(path, url, PERM_READ, False, info['token'])

    def create_public_share(self, path: str) -> Optional[str]:
        """
        create a public, read-only link to the resource with the given path and return its URL,
        or None if the link could not be created for any reason.
        """
        try:
            return self.create_share(path).public_url
        except DocStoreException as ex:
            self.log.warning("Unable to create share link for %s: %s", path, str(ex))
            return None
        except Exception as ex:
            self.log.warning("Unexpected failure creating share link for %s: %s: %s",
                             path, type(ex).__name__, str(ex))
            return None


def parse_share_response(content, content_type: str=None, ep: str=None) -> Mapping:
    """
    extract the interesting values from an OCS create-share response, which may be formatted
    as JSON or XML.  The returned dictionary contains ``statuscode`` (int or None),
    ``message``, ``url``, ``token``, and ``id``, any of which may be None if missing.

    :raises ParseError:  if the content cannot be parsed
    """
    if isinstance(content, str):
        content = content.encode('utf-8')
    content = content or b''

    if (content_type and 'json' in content_type) or content.lstrip().startswith(b'{'):
        meta, data = _parse_json_share(content, ep)
    else:
        meta, data = _parse_xml_share(content, ep)

    code = meta.get('statuscode')
    try:
        code = int(code) if code is not None else None
    except (TypeError, ValueError):
        code = None

    return OrderedDict([
        ("statuscode", code),
        ("message", meta.get('message') or None),
        ("url", _text_value(data.get('url'))),
        ("token", _text_value(data.get('token'))),
        ("id", data.get('id'))
    ])

def _text_value(val):
    # values of the wrong type are treated as missing
    if not isinstance(val, str):
        return None
    return val.strip() or None

def _parse_json_share(content, ep):
    try:
        doc = json.loads(content.decode('utf-8'))
    except ValueError as ex:
        raise ParseError("Share response could not be decoded as JSON: "+str(ex), ep) from ex

    ocs = doc.get('ocs') if isinstance(doc, Mapping) else None
    if not isinstance(ocs, Mapping):
        raise ParseError("Share response is missing the ocs object", ep)
    meta = ocs.get('meta') if isinstance(ocs.get('meta'), Mapping) else {}
    data = ocs.get('data') if isinstance(ocs.get('data'), Mapping) else {}
    return meta, data

def _parse_xml_share(content, ep):
    try:
        root = etree.fromstring(content)
    except (etree.XMLSyntaxError, ValueError) as ex:
        raise ParseError("Share response could not be parsed as XML: "+str(ex), ep) from ex

    meta = {}
    metael = root.find("meta")
    if metael is not None:
        meta = {child.tag: child.text for child in metael if isinstance(child.tag, str)}
    data = {}
    datael = root.find("data")
    if datael is not None:
        data = {child.tag: child.text for child in datael if isinstance(child.tag, str)}
    return meta, data
