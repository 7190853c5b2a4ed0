"""
A WSGI application exposing the document store as a web service, implemented with Flask

The :py:func:`create_app` function instantiates the WSGI application that can be provided
to a WSGI server (e.g. uWSGI).  This function takes the document store configuration (see
:py:mod:`ncdocs.config`) and additionally looks for the following parameters:

``name``
   (str) _optional_.  a name to the flask app; it is also used as the root name of
   the default logger.

``flask``
   (dict) _optional_.  Parameters specific to Flask (e.g. ``DEBUG``).

``endpoint_path``
   (str) _optional_.  the URL path prefix that the endpoints are served under.

``cors_origin``
   (str) _optional_.  if set, the value to return in an ``Access-Control-Allow-Origin`` header.

The application provides the following endpoints:

``POST /documents``
   upload a document submitted as ``multipart/form-data`` with a required ``file`` field and
   optional ``title``, ``description``, ``documentType``, ``clientId``, ``obligationId``,
   ``year``, and ``requireShare`` fields.
``GET /documents/content?path=PATH``  (or ``POST`` with JSON ``{"filePath": PATH}``)
   download a stored document
``GET /folders?path=PATH``
   list the contents of a folder
``POST /shares``
   create a public link to a stored file given JSON ``{"path": PATH}``
``GET /status``
   test the connection to the file server
"""
import logging
from logging import Logger
from collections import OrderedDict
from collections.abc import Mapping

from flask import Flask, request, current_app, Response, Blueprint
from flask_restful import Api, Resource

from ncdocs.config import with_defaults
from ncdocs.paths import normalize_path
from ncdocs.service import DocumentStoreService, UploadRequest, error_message
from ncdocs.exceptions import *

def create_app(config: Mapping, store: DocumentStoreService=None, log: Logger=None):
    """
    create the Flask application

    :param dict config:  the configuration data for the app
    :param DocumentStoreService store:  the document store service to use; if not provided,
                         one will be created from ``config``
    :param log  Logger:  the logger to use (optional)
    :raises ConfigurationError:  if the file server's location or credentials are not configured
    """
    config = with_defaults(config)
    if not isinstance(config.get('flask', {}), Mapping):
        raise ConfigurationError("Config param, flask, not a dictionary: " +
                                 str(type(config.get('flask'))))
    if config.get('max_upload_size') is not None:
        try:
            config['max_upload_size'] = int(config['max_upload_size'])
        except (TypeError, ValueError) as ex:
            raise ConfigurationError("Config param, max_upload_size, not an integer: " +
                                     str(config['max_upload_size'])) from ex

    app = Flask(__name__)
    app.name = config.get('name', 'ncdocs')
    if not log:
        log = logging.getLogger(app.name)
    app.logger = log
    app.config.update(config.get('flask', {}))
    app.config['NCDOCS'] = config

    if not store:
        store = DocumentStoreService(config, log=log.getChild("service"))
    app.service = store

    app.register_blueprint(DocumentsBlueprint(), url_prefix=config.get('endpoint_path') or None)

    if config.get('cors_origin'):
        origin = config['cors_origin']

        @app.after_request
        def add_cors_headers(resp):
            resp.headers['Access-Control-Allow-Origin'] = origin
            resp.headers['Access-Control-Allow-Headers'] = \
                'authorization, x-client-info, apikey, content-type'
            return resp

    return app

def make_error_content(message: str, kind: str=None):
    out = OrderedDict([("success", False), ("error", message)])
    if kind:
        out['errorKind'] = kind
    return out

def make_error_response(message: str, code: int, kind: str=None):
    return make_error_content(message, kind), code

def error_response_for(ex: Exception, intent: str):
    """
    convert an exception into an error response
    """
    kind = type(ex).__name__
    if isinstance(ex, NotFoundError):
        return make_error_response(str(ex), 404, kind)
    if isinstance(ex, InvalidNameError):
        return make_error_response(str(ex), 400, kind)
    if isinstance(ex, DocStoreException):
        current_app.logger.error("Failure while %s: %s", intent, str(ex))
        return make_error_response(error_message(ex), 500, kind)

    current_app.logger.exception(ex)
    return make_error_response(f"Internal server error while {intent}", 500)

def bad_input(message: str):
    return make_error_response(message, 400)

def _flag(value):
    if value is None or value == '':
        return None
    return value.strip().lower() in ("1", "true", "yes", "on")

class DocumentsResource(Resource):
    """
    the ``/documents`` endpoint handler
    """

    def post(self):
        """
        upload a document.  A 200 response carries ``{success, document, nextcloudPath, shareUrl}``;
        an upload failure returns 500 with ``{success, error, errorKind}``.
        """
        svc = current_app.service
        upload = request.files.get('file')
        if not upload or not upload.filename:
            return bad_input("No file provided")

        form = request.form
        year = form.get('year') or None
        if year is not None:
            try:
                year = int(year)
            except ValueError:
                return bad_input(f"Not a legal year: {year}")

        data = upload.read()
        maxsize = current_app.config['NCDOCS'].get('max_upload_size')
        if maxsize is not None and len(data) > maxsize:
            return make_error_response(f"File exceeds maximum upload size ({maxsize} bytes)", 413)

        req = UploadRequest(data, upload.filename, upload.mimetype or None,
                            title=form.get('title'), description=form.get('description'),
                            document_type=form.get('documentType'), client_ref=form.get('clientId'),
                            obligation_ref=form.get('obligationId'), year=year,
                            require_share=_flag(form.get('requireShare')))
        try:
            result = svc.upload(req)
        except Exception as ex:
            return error_response_for(ex, "uploading a document")

        return result.to_json(), (200 if result.success else 500)

class DocumentContentResource(Resource):
    """
    access to the content of a stored document (``/documents/content``)
    """

    def get(self):
        """
        return the content of the document whose path is given by the ``path`` query parameter
        """
        return self._send(request.args.get('path'))

    def post(self):
        """
        return the content of the document whose path is given by the ``filePath`` property of
        the input JSON object
        """
        rec = request.get_json(silent=True)
        if not isinstance(rec, Mapping):
            return bad_input("Input record is not a JSON object")
        return self._send(rec.get('filePath'))

    def _send(self, path):
        if not path:
            return bad_input("File path is required")

        svc = current_app.service
        try:
            doc = svc.download(path)
        except Exception as ex:
            return error_response_for(ex, "downloading a document")

        name = path.rstrip('/').rsplit('/', 1)[-1].replace('"', '')
        return Response(doc.content, 200, content_type=doc.content_type,
                        headers={'Content-Disposition': f'attachment; filename="{name}"'})

class FoldersResource(Resource):
    """
    the ``/folders`` endpoint handler
    """

    def get(self):
        """
        list the contents of the folder given by the ``path`` query parameter (default: the
        top of the user's space)
        """
        path = request.args.get('path') or '/'
        svc = current_app.service
        try:
            files = svc.list_folder(path)
        except Exception as ex:
            return error_response_for(ex, "listing a folder")

        return OrderedDict([("success", True), ("path", path),
                            ("files", [f.to_json() for f in files])])

class SharesResource(Resource):
    """
    the ``/shares`` endpoint handler
    """

    def post(self):
        """
        create a public, read-only link to an existing file.  Link creation is best-effort:  if
        it fails, ``shareUrl`` is null.
        """
        rec = request.get_json(silent=True)
        if not isinstance(rec, Mapping) or not rec.get('path'):
            return bad_input("Share request missing 'path' property")
        if not isinstance(rec['path'], str):
            return bad_input("Share request 'path' property is not a string")
        try:
            path = normalize_path(rec['path'])
        except InvalidNameError as ex:
            return make_error_response(str(ex), 400, type(ex).__name__)

        svc = current_app.service
        try:
            url = svc.create_share(path)
        except Exception as ex:
            return error_response_for(ex, "creating a share link")

        out = OrderedDict([("success", url is not None), ("path", path), ("shareUrl", url)])
        if url is None:
            out['error'] = "Unable to create share link"
        return out

class StatusResource(Resource):
    """
    the ``/status`` endpoint handler
    """

    def get(self):
        """
        report whether the file server is reachable with the configured credentials
        """
        if current_app.service.test_connection():
            return {"success": True}, 200
        return make_error_response("File server connection test failed", 503)


def DocumentsBlueprint():
    bp = Blueprint("documents", __name__)
    api = Api(bp)
    api.add_resource(DocumentsResource, '/documents')
    api.add_resource(DocumentContentResource, '/documents/content')
    api.add_resource(FoldersResource, '/folders')
    api.add_resource(SharesResource, '/shares')
    api.add_resource(StatusResource, '/status')
    return bp
