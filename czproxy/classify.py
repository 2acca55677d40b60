"""Content category detection for fetched bodies and streamed media"""
import enum
import posixpath
from urllib.parse import urlsplit

DEFAULT_MEDIA_TYPE = 'application/octet-stream'


class ContentCategory(enum.Enum):
    HTML = 'html'
    CSS = 'css'
    OTHER = 'other'


def url_extension(url):
    """Lower-cased extension of the URL path, without the dot"""
    try:
        path = urlsplit(url or '').path
    except ValueError:
        return ''
    return posixpath.splitext(path)[1][1:].lower()


def classify(content_type, url):
    """Map a content type (or, when empty, the URL extension) to a category"""
    if content_type:
        content_type = content_type.lower()
        if 'text/html' in content_type or 'application/xhtml' in content_type:
            return ContentCategory.HTML
        if 'text/css' in content_type:
            return ContentCategory.CSS
        return ContentCategory.OTHER

    ext = url_extension(url)
    if ext == 'css':
        return ContentCategory.CSS
    if ext in ('html', 'htm'):
        return ContentCategory.HTML
    return ContentCategory.OTHER


def guess_media_type(url, media_types):
    """Media type for a stream whose origin sent no Content-Type"""
    return media_types.get(url_extension(url), DEFAULT_MEDIA_TYPE)
