"""
URL resolution and the proxy link codec

Every link handed back to a client has the form
``{proxy_origin}/{endpoint}?url={percent-encoded absolute target}``.
"""
from urllib.parse import parse_qsl, quote, urljoin, urlsplit

from czproxy.errors import RewriteError, ValidationError

FETCHABLE_SCHEMES = ('http', 'https')
SKIPPED_PREFIXES = ('data:', 'javascript:', '#')
FETCH_ENDPOINT = 'fetch'


def resolve_url(base, candidate):
    """
    Resolve ``candidate`` against ``base``.

    Returns an absolute http(s) URL, or None when the reference must be left
    untouched (empty, data:, javascript:, fragment-only, other schemes, or
    anything that fails to parse).
    """
    if not candidate:
        return None
    candidate = candidate.strip()
    if not candidate or candidate.lower().startswith(SKIPPED_PREFIXES):
        return None

    try:
        if candidate.startswith('//'):
            resolved = f"{urlsplit(base).scheme}:{candidate}"
        elif candidate.lower().startswith(('http://', 'https://')):
            resolved = candidate
        else:
            resolved = urljoin(base, candidate)
        parts = urlsplit(resolved)
    except ValueError:
        return None

    if parts.scheme.lower() not in FETCHABLE_SCHEMES or not parts.netloc:
        return None
    return resolved


def encode_proxy_url(target, origin, endpoint=FETCH_ENDPOINT):
    """Build the same-origin link that carries ``target`` back to the proxy"""
    if target is None:
        return None
    try:
        encoded = quote(target, safe='')
    except UnicodeEncodeError as e:
        raise RewriteError(f"Cannot encode {target!r}: {e}")
    return f"{origin}/{endpoint}?url={encoded}"


def decode_proxy_url(link):
    """Recover the target URL carried by a proxy link, or None"""
    try:
        query = urlsplit(link).query
    except ValueError:
        return None
    for key, value in parse_qsl(query, keep_blank_values=True):
        if key == 'url':
            return value
    return None


def validate_target_url(url):
    """Reject anything that is not an absolute http(s) URL"""
    if not url:
        raise ValidationError('Missing url parameter')
    if any(ch.isspace() for ch in url):
        raise ValidationError('Invalid URL format')
    try:
        parts = urlsplit(url)
        hostname = parts.hostname
    except ValueError:
        raise ValidationError('Invalid URL format')
    if parts.scheme.lower() not in FETCHABLE_SCHEMES or not hostname:
        raise ValidationError('Invalid URL format')
    return url


def proxy_origin(request, public_url=''):
    """
    Scheme and host the client used to reach us.

    Honors X-Forwarded-Proto/X-Forwarded-Host when running behind another
    reverse proxy (Codespaces port forwarding, load balancers, ...).
    """
    if public_url:
        return public_url.rstrip('/')
    proto = request.headers.get('X-Forwarded-Proto') or request.scheme
    host = request.headers.get('X-Forwarded-Host') or request.host
    proto = proto.split(',')[0].strip()
    host = host.split(',')[0].strip()
    return f"{proto}://{host}"
