"""
CSS rewriting: url(...) references and @import targets
"""
import re

from czproxy.errors import RewriteError
from czproxy.logs import logger
from czproxy.urls import encode_proxy_url, resolve_url

# One pass over both forms so a rewritten @import is never visited twice.
# @import url(...) is left to the url() branch.
CSS_REFERENCE = re.compile(
    r"""(?P<import>@import\s*)(?P<iq>["'])(?P<iurl>.*?)(?P=iq)"""
    r"""|url\(\s*(?P<uq>["']?)(?P<url>.*?)(?P=uq)\s*\)""",
    re.IGNORECASE | re.DOTALL,
)


def proxied_link(value, base, origin):
    """Proxy link for ``value`` or None when it must stay as written"""
    target = resolve_url(base, value)
    if target is None:
        return None
    try:
        return encode_proxy_url(target, origin)
    except RewriteError as e:
        logger.debug(f"[REWRITE] keeping original reference: {e}")
        return None


def rewrite_css(css, base, origin):
    """Rewrite every url() and @import target in a stylesheet or style attribute"""

    def replace(match):
        if match.group('import') is not None:
            link = proxied_link(match.group('iurl'), base, origin)
            if link is None:
                return match.group(0)
            return f"{match.group('import')}'{link}'"

        link = proxied_link(match.group('url'), base, origin)
        if link is None:
            return match.group(0)
        return f"url('{link}')"

    return CSS_REFERENCE.sub(replace, css)
