"""
Fetch path: retrieve, classify, rewrite HTML/CSS, pass everything else through
"""
import codecs
import re
from dataclasses import dataclass

from czproxy.classify import DEFAULT_MEDIA_TYPE, ContentCategory, classify
from czproxy.css_rewriter import rewrite_css
from czproxy.html_rewriter import rewrite_html
from czproxy.logs import log_request

CHARSET = re.compile(r'charset\s*=\s*["\']?([\w.:-]+)', re.IGNORECASE)

FALLBACK_CONTENT_TYPES = {
    ContentCategory.HTML: 'text/html',
    ContentCategory.CSS: 'text/css',
    ContentCategory.OTHER: DEFAULT_MEDIA_TYPE,
}


@dataclass
class ProxiedResponse:
    status_code: int
    content_type: str
    body: bytes


def charset_of(content_type):
    """Declared charset if Python knows it, otherwise utf-8"""
    match = CHARSET.search(content_type or '')
    if match:
        try:
            return codecs.lookup(match.group(1)).name
        except LookupError:
            pass
    return 'utf-8'


class FetchOrchestrator:
    """Runs one /fetch request against the configured fetch capability"""

    def __init__(self, fetcher):
        self.fetcher = fetcher

    def handle(self, target_url, origin, referer=None):
        log_request('fetch', 'GET', target_url)
        resource = self.fetcher.fetch(target_url, referer=referer)

        category = classify(resource.content_type, target_url)
        body = resource.body
        if category is not ContentCategory.OTHER:
            # Undecodable bytes survive the round trip via surrogateescape
            encoding = charset_of(resource.content_type)
            text = body.decode(encoding, errors='surrogateescape')
            if category is ContentCategory.HTML:
                text = rewrite_html(text, target_url, origin)
            else:
                text = rewrite_css(text, target_url, origin)
            body = text.encode(encoding, errors='surrogateescape')

        content_type = resource.content_type or FALLBACK_CONTENT_TYPES[category]
        log_request('fetch', 'GET', target_url,
                    f"✓ {resource.status_code} {category.value} {len(body)}b")
        return ProxiedResponse(resource.status_code, content_type, body)
