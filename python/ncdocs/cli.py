"""
a command-line interface to the document store.  The :py:func:`main` function provides the
implementation; see ``scripts/ncdocs`` for the executable wrapper.

Results are written to standard output as JSON (except for downloaded content).  The exit codes
follow the conventions used by the other command-line tools:

  * 0:  normal successful completion
  * 1:  general processing failure
  * 2:  misused command-line options
  * 3:  the input file or configuration file could not be read or parsed
  * 4:  the output file could not be written
  * 5:  the file server was unreachable or rejected the request
  * 6:  missing or invalid configuration
"""
import sys, os, json, logging, mimetypes
from argparse import ArgumentParser

import yaml

from ncdocs import config
from ncdocs.exceptions import *
from ncdocs.service import DocumentStoreService, UploadRequest, error_message


class Failure(Exception):
    """
    an exception indicating that the command failed and the program should exit with a
    non-zero exit code
    """
    def __init__(self, message, exitcode=1, cause=None):
        if not message and cause:
            message = str(cause)
        super(Failure, self).__init__(message)
        self.exitcode = exitcode
        self.cause = cause

def define_options(progname):
    """
    return an ArgumentParser instance that is configured with options
    for the command-line interface.
    """
    description = "Store documents in, retrieve them from, and share them out of a Nextcloud " \
                  "file server"
    epilog = "The server URL and credentials are taken from the configuration file or, if not " \
             "set there, from the NEXTCLOUD_URL, NEXTCLOUD_USERNAME, and NEXTCLOUD_PASSWORD " \
             "environment variables."

    parser = ArgumentParser(progname, None, description, epilog)
    parser.add_argument('-c', '--config-file', type=str, dest='cfgfile', metavar='FILE',
                        help="a file (YAML or JSON) containing the configuration to use")
    parser.add_argument('-l', '--logfile', action='store', dest='logfile', type=str, metavar='FILE',
                        help="write messages that normally go to standard error to FILE as well.  "+
                             "If -q is also specified, the messages will only go to the logfile")
    parser.add_argument('-v', '--verbose', action='store_true', dest='verbose',
                        help="print more (debug) messages to standard error and/or the log file")
    parser.add_argument('-q', '--quiet', action='store_true', dest='quiet',
                        help="suppress all error and warning messages to standard error")

    subparsers = parser.add_subparsers(title="commands", dest='cmd', metavar='CMD')

    p = subparsers.add_parser("upload", help="upload a file, filing it by document type and year")
    p.add_argument('file', metavar='FILE', type=str, help="the file to upload")
    p.add_argument('-t', '--type', type=str, dest='doctype', metavar='TYPE',
                   help="the document type to file the document under (e.g. receipt)")
    p.add_argument('-y', '--year', type=int, dest='year', metavar='YEAR',
                   help="the year to file the document under (default: this year)")
    p.add_argument('-m', '--mime-type', type=str, dest='mimetype', metavar='TYPE',
                   help="the MIME type of the file (default: guessed from its name)")
    p.add_argument('-T', '--title', type=str, dest='title', metavar='TEXT',
                   help="a title for the document")
    p.add_argument('-d', '--description', type=str, dest='desc', metavar='TEXT',
                   help="a description of the document")
    p.add_argument('-C', '--client', type=str, dest='client', metavar='ID',
                   help="the identifier of the client the document belongs to")
    p.add_argument('-O', '--obligation', type=str, dest='obligation', metavar='ID',
                   help="the identifier of the obligation the document supports")
    p.add_argument('-S', '--require-share', action='store_true', dest='reqshare', default=None,
                   help="fail if a public share link cannot be created")

    p = subparsers.add_parser("download", help="download a stored file")
    p.add_argument('path', metavar='PATH', type=str, help="the remote path of the file")
    p.add_argument('-o', '--output', type=str, dest='outfile', metavar='FILE',
                   help="write the content to FILE (default: the file's name in the current "+
                        "directory; use - for standard output)")

    p = subparsers.add_parser("list", help="list the contents of a folder")
    p.add_argument('path', metavar='PATH', type=str, nargs='?', default='/',
                   help="the remote path of the folder (default: /)")

    p = subparsers.add_parser("share", help="create a public link to a stored file")
    p.add_argument('path', metavar='PATH', type=str, help="the remote path of the file")

    subparsers.add_parser("test", help="test the connection to the file server")

    return parser

def read_config(filepath):
    """
    read the configuration from a file having the given filepath

    :except Failure:  if the contents contains syntax or format errors
    :except IOError:  if a failure occurs while opening or reading the file
    """
    try:
        return config.load_from_file(filepath)
    except (ValueError, yaml.YAMLError) as ex:
        raise Failure("Config parsing error: "+str(ex), 3, ex)
    except ConfigurationError as ex:
        raise Failure(str(ex), 6, ex)

def main(progname, args, out=None):
    """
    execute the requested command
    """
    if out is None:
        out = sys.stdout
    parser = define_options(progname)
    opts = parser.parse_args(args)
    if not opts.cmd:
        raise Failure("No command given; use -h for help", 2)

    rootlog = logging.getLogger()
    level = (opts.verbose and logging.DEBUG) or logging.INFO
    if opts.logfile:
        config.configure_log(opts.logfile, level,
                             "%(asctime)s " + progname + ".%(name)s %(levelname)s: %(message)s")
    if not opts.quiet:
        fmt = progname + ": %(levelname)s: %(message)s"
        hdlr = logging.StreamHandler(sys.stderr)
        hdlr.setFormatter(logging.Formatter(fmt))
        hdlr.setLevel(logging.WARNING if not opts.verbose else logging.DEBUG)
        rootlog.addHandler(hdlr)
        rootlog.setLevel(level)
    elif not rootlog.handlers:
        rootlog.addHandler(logging.NullHandler())

    cfg = {}
    if opts.cfgfile:
        try:
            cfg = read_config(opts.cfgfile)
        except EnvironmentError as ex:
            raise Failure("problem reading config file, {0}: {1}"
                          .format(opts.cfgfile, ex.strerror), 3, ex) from ex

    try:
        svc = DocumentStoreService(cfg, log=logging.getLogger(progname))
    except ConfigurationError as ex:
        raise Failure(str(ex), 6, ex) from ex

    try:
        if opts.cmd == "upload":
            return upload(svc, opts, out)
        if opts.cmd == "download":
            return download(svc, opts, out)
        if opts.cmd == "list":
            _write_json([d.to_json() for d in svc.list_folder(opts.path)], out)
        elif opts.cmd == "share":
            url = svc.create_share(opts.path)
            _write_json({"path": opts.path, "shareUrl": url}, out)
            if not url:
                raise Failure(f"{opts.path}: unable to create share link", 5)
        elif opts.cmd == "test":
            if not svc.test_connection():
                raise Failure("File server connection test failed", 5)
            _write_json({"success": True}, out)
    except InvalidNameError as ex:
        raise Failure(str(ex), 2, ex) from ex
    except DocStoreServiceError as ex:
        raise Failure(error_message(ex), 5, ex) from ex

    return 0

def upload(svc, opts, out):
    mimetype = opts.mimetype or mimetypes.guess_type(opts.file)[0]
    try:
        with open(opts.file, 'rb') as fd:
            req = UploadRequest(fd, os.path.basename(opts.file), mimetype, opts.title, opts.desc,
                                opts.doctype, opts.client, opts.obligation, opts.year, opts.reqshare)
            result = svc.upload(req)
    except EnvironmentError as ex:
        raise Failure(f"{opts.file}: unable to read file: {ex.strerror}", 3, ex) from ex

    _write_json(result.to_json(), out)
    if not result.success:
        raise Failure(result.message, 5 if result.error_kind != "InvalidNameError" else 2)
    return 0

def download(svc, opts, out):
    doc = svc.download(opts.path)
    outfile = opts.outfile or opts.path.rstrip('/').rsplit('/', 1)[-1]
    if outfile == '-':
        getattr(out, 'buffer', out).write(doc.content)
        return 0

    try:
        with open(outfile, 'wb') as fd:
            fd.write(doc.content)
    except EnvironmentError as ex:
        raise Failure(f"{outfile}: unable to write file: {ex.strerror}", 4, ex) from ex
    _write_json({"path": opts.path, "file": outfile, "size": doc.size,
                 "contentType": doc.content_type}, out)
    return 0

def _write_json(data, out):
    json.dump(data, out, indent=2)
    out.write("\n")
