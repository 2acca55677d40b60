"""
Streaming forwarder for video, audio and other large binaries

Probe with HEAD to learn the final URL and content type, then open a second,
long-lived GET to the origin, forwarding the client's Range header. The
origin's Content-Length/Content-Range are relayed and the body is passed on
chunk by chunk as it arrives.

Delivery to the client goes through a StreamSink with two ordered phases:
header() calls first, then chunk() calls. Once the first chunk has gone out
the headers are frozen.
"""
from collections import namedtuple

import requests

from czproxy.classify import guess_media_type
from czproxy.errors import UpstreamError
from czproxy.logs import log_request, logger

Probe = namedtuple('Probe', ['final_url', 'status_code', 'content_type'])

# Origin headers relayed to the client during the header phase
RELAYED_HEADERS = ('Content-Length', 'Content-Range')


class HeadersCommittedError(RuntimeError):
    """A header arrived after the first body byte was sent"""


class StreamSink:
    """Receives a stream's headers, then its body chunks"""

    def header(self, name, value):
        raise NotImplementedError

    def chunk(self, data):
        raise NotImplementedError


class ResponseSink(StreamSink):
    """Collects status and headers for the client response, then passes chunks through"""

    def __init__(self):
        self.status_code = 200
        self.headers = {}
        self.bytes_sent = 0
        self.committed = False

    def header(self, name, value):
        if self.committed:
            raise HeadersCommittedError(f"cannot set {name} after streaming started")
        self.headers[name] = value
        if name.lower() == 'content-range':
            self.status_code = 206

    def chunk(self, data):
        self.committed = True
        self.bytes_sent += len(data)
        return data


class StreamForwarder:
    """Relays one origin resource to one client, Range-aware"""

    def __init__(self, config, http=requests):
        self.config = config
        self.http = http

    def _headers(self):
        return {'User-Agent': self.config.user_agent}

    def probe(self, url):
        """HEAD the target, following redirects"""
        try:
            resp = self.http.head(
                url,
                headers=self._headers(),
                allow_redirects=True,
                timeout=self.config.fetch_timeout,
                verify=self.config.verify_tls,
            )
        except requests.RequestException as e:
            raise UpstreamError(f"Probe failed: {e}")
        resp.close()
        return Probe(resp.url or url, resp.status_code, resp.headers.get('Content-Type', ''))

    def open(self, url, range_header=None):
        """Open the long-lived body connection; no read timeout, no size limit"""
        headers = self._headers()
        headers['Accept-Encoding'] = 'identity'
        if range_header:
            headers['Range'] = range_header
        try:
            return self.http.get(
                url,
                headers=headers,
                stream=True,
                allow_redirects=True,
                timeout=(self.config.connect_timeout, None),
                verify=self.config.verify_tls,
            )
        except requests.RequestException as e:
            raise UpstreamError(f"Stream connection failed: {e}")

    def forward(self, url, sink, range_header=None):
        """
        Run the probe, the first body read and the header phase now; return
        the body iterator.

        Anything that fails before the iterator is returned raises
        UpstreamError, so the caller can still answer with an error response.
        """
        log_request('stream', 'GET', url, f"→ range={range_header or '-'}")
        probe = self.probe(url)
        if probe.status_code >= 400:
            raise UpstreamError(
                f"Remote server returned HTTP {probe.status_code}",
                status_code=probe.status_code,
            )

        content_type = probe.content_type or guess_media_type(
            probe.final_url, self.config.media_types)

        upstream = self.open(probe.final_url, range_header)
        if upstream.status_code >= 400:
            upstream.close()
            raise UpstreamError(
                f"Remote server returned HTTP {upstream.status_code}",
                status_code=upstream.status_code,
            )

        # First read happens before any header is committed
        chunks = upstream.iter_content(chunk_size=self.config.chunk_size)
        try:
            first = next(chunks, b'')
        except requests.RequestException as e:
            upstream.close()
            raise UpstreamError(f"Stream failed before the first byte: {e}")

        sink.header('Content-Type', content_type)
        sink.header('Accept-Ranges', 'bytes')
        # iter_content undoes any content coding, so the origin length would lie
        coded = upstream.headers.get('Content-Encoding', 'identity').lower() != 'identity'
        for name in RELAYED_HEADERS:
            value = upstream.headers.get(name)
            if not value or (coded and name == 'Content-Length'):
                continue
            sink.header(name, value)

        log_request('stream', 'GET', url, f"✓ {sink.status_code} {content_type}")
        return self.relay(url, upstream, sink, first, chunks)

    def relay(self, url, upstream, sink, first, chunks):
        """
        Yield ``first`` and then the rest of ``chunks`` as they arrive.

        Closing the generator (client went away) closes the origin connection.
        """
        try:
            if first:
                yield sink.chunk(first)
            for data in chunks:
                if data:
                    yield sink.chunk(data)
        except requests.RequestException as e:
            logger.error(f"Stream error after {sink.bytes_sent} bytes for {url[:80]}: {e}")
        finally:
            upstream.close()
