"""
Functions for deriving the remote paths that documents are filed under.

Uploaded documents are filed under the remote user's namespace according to the scheme,
``/{root}/{document_type}/{year}/{timestamp}_{filename}``, where ``filename`` is the original
file name restricted to a safe character set and ``timestamp`` is a sortable token that keeps
repeated uploads of the same file from colliding.
"""
import re
from datetime import datetime, timezone
from typing import Tuple

from .exceptions import InvalidNameError

MAX_NAME_LENGTH = 255
REPLACEMENT = '_'

_disallowed_re = re.compile(r'[^A-Za-z0-9._-]')
_repeated_re = re.compile(re.escape(REPLACEMENT)+'{2,}')

def sanitize_filename(name: str, maxlen: int=MAX_NAME_LENGTH) -> str:
    """
    return a version of the given name that contains only characters from the set
    ``[A-Za-z0-9._-]``.  Each disallowed character is replaced with an underscore, runs of
    underscores are collapsed to one, and the result is truncated to ``maxlen`` characters.

    :raises InvalidNameError:  if nothing meaningful remains after sanitizing (e.g. the name
                               was made up entirely of disallowed characters)
    """
    if name is None:
        raise InvalidNameError(name)
    out = _repeated_re.sub(REPLACEMENT, _disallowed_re.sub(REPLACEMENT, name))
    out = out[:maxlen]
    if not out.strip(REPLACEMENT+'.'):
        raise InvalidNameError(name)
    return out

def timestamp_token(when: datetime=None) -> str:
    """
    return a sortable, path-safe token representing the given time (default: now).  The token
    is the ISO-8601 UTC time (to the millisecond) with colons and the decimal point replaced by
    dashes (e.g. ``2024-03-01T09-15-42-118Z``).
    """
    if when is None:
        when = datetime.now(timezone.utc)
    elif when.tzinfo is not None:
        when = when.astimezone(timezone.utc)
    stamp = when.strftime("%Y-%m-%dT%H:%M:%S") + ".%03dZ" % (when.microsecond // 1000)
    return stamp.replace(':', '-').replace('.', '-')

def folder_path(root: str, document_type: str, year: int) -> str:
    """
    return the folder that documents of the given type and year are filed under
    """
    try:
        year = int(year)
    except (TypeError, ValueError) as ex:
        raise InvalidNameError(str(year), f"Not a legal year: {year!r}") from ex
    if year < 1 or year > 9999:
        raise InvalidNameError(str(year), f"Year out of range: {year}")

    parts = [sanitize_filename(p) for p in (root or '').split('/') if p]
    parts.append(sanitize_filename(document_type))
    parts.append("%04d" % year)
    return '/' + '/'.join(parts)

def build_path(document_type: str, year: int, original_file_name: str, root: str="documents",
               when: datetime=None) -> str:
    """
    return the remote path that an uploaded file should be stored at.

    :param str  document_type:  the category of document (e.g. "receipt")
    :param int           year:  the year the document is filed under
    :param str original_file_name:  the name of the file as supplied by the user
    :param str           root:  the top-level folder for all documents
    :param datetime      when:  the time to use for the uniqueness prefix (default: now)
    :raises InvalidNameError:  if a safe name cannot be derived from ``original_file_name`` or
                               ``document_type``; the caller should supply a fallback name.
    """
    folder = folder_path(root, document_type, year)
    prefix = timestamp_token(when) + REPLACEMENT
    name = sanitize_filename(original_file_name)
    name = prefix + name[:MAX_NAME_LENGTH - len(prefix)]
    return f"{folder}/{name}"

def normalize_path(path: str) -> str:
    """
    return the given remote path in its normalized form:  a single leading slash, no empty
    or ``.`` segments, and no trailing slash (except for the root, ``/``).

    :raises InvalidNameError:  if the path contains a ``..`` segment
    """
    segs = []
    for seg in (path or '').replace('\\', '/').split('/'):
        if not seg or seg == '.':
            continue
        if seg == '..':
            raise InvalidNameError(path, f"Parent references not allowed in path: {path}")
        segs.append(seg)
    return '/' + '/'.join(segs)

def split_path(path: str) -> Tuple[str, str]:
    """
    split a remote path into its folder and its final name.  The folder of a top-level item
    is ``/``.
    """
    path = normalize_path(path)
    folder, _, name = path.rpartition('/')
    return (folder or '/', name)
