"""Error taxonomy shared by the fetch, rewrite and streaming paths"""


class ProxyError(Exception):
    """Base error, rendered to the client as a JSON body"""

    status_code = 500

    def __init__(self, message, status_code=None, **details):
        super().__init__(message)
        self.message = message
        self.details = details
        if status_code is not None:
            self.status_code = status_code

    def to_dict(self):
        body = {'success': False, 'error': self.message}
        body.update(self.details)
        return body


class ValidationError(ProxyError):
    """Missing or malformed request parameter, never forwarded upstream"""

    status_code = 400


class UpstreamError(ProxyError):
    """Fetch backend or origin failed, or returned something unusable"""

    status_code = 502


class RewriteError(ProxyError):
    """A single reference could not be rewritten; the original is kept"""
