"""
HTML rewriting: every URL-bearing attribute, srcset, inline style and
<style> block is pointed back at the proxy

Entities are kept exactly as the origin wrote them. Before parsing, every
``&`` is swapped for a private-use sentinel the document does not contain,
so the parser never decodes anything; the sentinel is swapped back on output.
Only values that are actually rewritten are decoded (and re-escaped).

Parsing follows the HTML tree-construction rules (html5lib), so implied end
tags, missing wrappers and duplicate attributes come out the way a browser
would build them.
"""
import html
import re
from types import MappingProxyType

from bs4 import BeautifulSoup, NavigableString
from bs4.formatter import HTMLFormatter

from czproxy.css_rewriter import proxied_link, rewrite_css


class VerbatimFormatter(HTMLFormatter):
    """Source attribute order, no entity substitution, <img ...> not <img .../>"""

    def __init__(self):
        super().__init__(
            entity_substitution=None,
            void_element_close_prefix=None,
            empty_attributes_are_booleans=True,
        )

    def attributes(self, tag):
        return [(k, None if v == '' else v) for k, v in tag.attrs.items()]


VERBATIM = VerbatimFormatter()

SRCSET_SEPARATOR = re.compile(r'[\s,]*')
SRCSET_URL = re.compile(r'\S+')
SRCSET_DESCRIPTORS = re.compile(r'[^,]*')


def rewrite_link(value, base, origin):
    return proxied_link(value, base, origin)


def rewrite_srcset(value, base, origin):
    """Rewrite the URL of each srcset candidate, keeping descriptors and spacing"""
    out = []
    pos = 0
    while pos < len(value):
        sep = SRCSET_SEPARATOR.match(value, pos)
        out.append(sep.group())
        pos = sep.end()
        if pos >= len(value):
            break

        url = SRCSET_URL.match(value, pos).group()
        pos += len(url)
        bare = url.rstrip(',')
        out.append(proxied_link(bare, base, origin) or bare)

        if bare != url:
            # "a.png,b.png 2x": trailing commas end the candidate
            out.append(url[len(bare):])
            continue

        descriptors = SRCSET_DESCRIPTORS.match(value, pos)
        out.append(descriptors.group())
        pos = descriptors.end()
    return ''.join(out)


def rewrite_style(value, base, origin):
    return rewrite_css(value, base, origin)


# attribute name -> rewrite(decoded value, base, origin) -> new value or None
ATTRIBUTE_POLICY = MappingProxyType({
    'href': rewrite_link,
    'src': rewrite_link,
    'action': rewrite_link,
    'data-src': rewrite_link,
    'data-href': rewrite_link,
    'poster': rewrite_link,
    'data-lazy-src': rewrite_link,
    'data-original': rewrite_link,
    'srcset': rewrite_srcset,
    'style': rewrite_style,
})


def pick_sentinel(markup):
    """A private-use character that does not occur in ``markup``"""
    for code in range(0xE000, 0xF900):
        sentinel = chr(code)
        if sentinel not in markup:
            return sentinel
    raise ValueError('no free private-use character for entity masking')


def rewrite_html(markup, base, origin, policy=ATTRIBUTE_POLICY):
    """Return ``markup`` with every rewritable reference routed through the proxy"""
    sentinel = pick_sentinel(markup)

    def decoded(raw):
        return html.unescape(raw.replace(sentinel, '&'))

    soup = BeautifulSoup(
        markup.replace('&', sentinel),
        'html5lib',
        multi_valued_attributes=None,
    )

    # A <base> would re-anchor the browser's own resolution of what we emit
    for tag in soup.find_all('base'):
        tag.decompose()

    for element in soup.find_all(True):
        for name, value in list(element.attrs.items()):
            rewrite = policy.get(name)
            if rewrite is None or not value:
                continue
            original = decoded(value)
            new_value = rewrite(original, base, origin)
            if new_value is not None and new_value != original:
                element[name] = html.escape(new_value, quote=False)

    for style in soup.find_all('style'):
        css = ''.join(
            str(s) for s in style.contents if isinstance(s, NavigableString)
        ).replace(sentinel, '&')
        new_css = rewrite_css(css, base, origin)
        if new_css != css:
            style.string = new_css

    # eventual_encoding=None keeps <meta charset> as the origin declared it
    output = soup.decode(eventual_encoding=None, formatter=VERBATIM)
    return output.replace(sentinel, '&')
