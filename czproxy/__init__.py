"""
CZ Web Proxy - rewriting reverse proxy for geo-restricted content
Fetches pages through this server, rewrites HTML/CSS links back to the proxy
and relays media streams with Range support
"""
from czproxy.app import create_app
from czproxy.config import ProxyConfig

__version__ = "1.0.0"
__all__ = ["create_app", "ProxyConfig"]
