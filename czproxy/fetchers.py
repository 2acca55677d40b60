"""
External fetch capability: "give me the bytes and headers for this URL"

DirectFetcher talks to the origin itself. BackendFetcher asks a relay backend
(another deployment's /relay endpoint, or the original PHP relay) and unpacks
its JSON envelope.
"""
import base64
import binascii
from dataclasses import dataclass, field
from typing import Dict

import requests

from czproxy.errors import UpstreamError
from czproxy.logs import logger


@dataclass
class FetchedResource:
    """One origin response, held only for the duration of a request"""
    status_code: int
    content_type: str
    body: bytes
    final_url: str
    headers: Dict[str, str] = field(default_factory=dict)

    @property
    def ok(self):
        return 200 <= self.status_code < 400


def build_envelope(resource):
    """JSON-serializable envelope for a fetched resource"""
    try:
        body = resource.body.decode('utf-8')
        body_encoding = None
    except UnicodeDecodeError:
        body = base64.b64encode(resource.body).decode('ascii')
        body_encoding = 'base64'

    envelope = {
        'success': resource.ok,
        'httpCode': resource.status_code,
        'finalUrl': resource.final_url,
        'contentType': resource.content_type,
        'contentLength': len(resource.body),
        'headers': {k.lower(): v for k, v in resource.headers.items()},
        'body': body,
    }
    if body_encoding:
        envelope['bodyEncoding'] = body_encoding
    return envelope


def parse_envelope(data):
    """Turn a relay envelope back into a FetchedResource"""
    if not isinstance(data, dict):
        raise UpstreamError('Invalid envelope from backend')
    if not data.get('success') and data.get('error'):
        raise UpstreamError(f"Backend error: {data['error']}")

    try:
        status_code = int(data['httpCode'])
    except (KeyError, TypeError, ValueError):
        raise UpstreamError('Invalid envelope from backend: missing httpCode')

    body = data.get('body') or ''
    if not isinstance(body, str):
        raise UpstreamError('Invalid envelope from backend: body is not a string')
    if data.get('bodyEncoding') == 'base64':
        try:
            raw = base64.b64decode(body, validate=True)
        except (binascii.Error, ValueError):
            raise UpstreamError('Invalid envelope from backend: bad base64 body')
    else:
        raw = body.encode('utf-8', errors='surrogateescape')

    headers = data.get('headers') or {}
    return FetchedResource(
        status_code=status_code,
        content_type=data.get('contentType') or '',
        body=raw,
        final_url=data.get('finalUrl') or '',
        headers=dict(headers) if isinstance(headers, dict) else {},
    )


class DirectFetcher:
    """Fetches origins with requests, following redirects"""

    def __init__(self, config, session_factory=requests.Session):
        self.config = config
        self.session_factory = session_factory

    def fetch(self, url, referer=None):
        headers = {'User-Agent': self.config.user_agent}
        if referer:
            headers['Referer'] = referer

        try:
            with self.session_factory() as session:
                session.max_redirects = self.config.max_redirects
                resp = session.get(
                    url,
                    headers=headers,
                    allow_redirects=True,
                    timeout=self.config.fetch_timeout,
                    verify=self.config.verify_tls,
                )
        except requests.RequestException as e:
            logger.error(f"[FETCH ERROR] {url[:60]}: {e}")
            raise UpstreamError(f"Request error: {e}")

        return FetchedResource(
            status_code=resp.status_code,
            content_type=resp.headers.get('Content-Type', ''),
            body=resp.content,
            final_url=resp.url,
            headers=dict(resp.headers),
        )


class BackendFetcher:
    """Fetches through a relay backend speaking the JSON envelope"""

    def __init__(self, config, http_get=requests.get):
        self.config = config
        self.http_get = http_get

    def fetch(self, url, referer=None):
        params = {'url': url}
        if referer:
            params['referer'] = referer
        backend = self.config.backend_url + '/'
        logger.debug(f"Fetching from backend: {backend} url={url}")

        try:
            resp = self.http_get(
                backend,
                params=params,
                timeout=self.config.fetch_timeout,
                verify=self.config.verify_tls,
            )
        except requests.RequestException as e:
            raise UpstreamError(f"Backend unreachable: {e}")

        try:
            data = resp.json()
        except ValueError:
            raise UpstreamError(f"Invalid JSON from backend: {resp.text[:200]}")
        return parse_envelope(data)


def egress_ip(config, http_get=requests.get):
    """Our public address as reported by ``config.egress_ip_url``, or 'unknown'"""
    try:
        resp = http_get(
            config.egress_ip_url,
            headers={'User-Agent': config.user_agent},
            timeout=config.connect_timeout,
            verify=config.verify_tls,
        )
        resp.raise_for_status()
    except requests.RequestException as e:
        logger.warning(f"Egress IP lookup failed: {e}")
        return 'unknown'
    return resp.text.strip() or 'unknown'


def make_fetcher(config):
    """BackendFetcher when a relay backend is configured, else DirectFetcher"""
    if config.backend_url:
        return BackendFetcher(config)
    return DirectFetcher(config)
