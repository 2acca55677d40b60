"""
Process-wide configuration, read once at startup and never mutated
"""
import os
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Mapping, Optional

DEFAULT_USER_AGENT = (
    'Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 '
    '(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36'
)

# Fallback media types for streams whose origin sends no Content-Type
MEDIA_TYPES = MappingProxyType({
    'mp4': 'video/mp4',
    'm3u8': 'application/vnd.apple.mpegurl',
    'ts': 'video/mp2t',
    'mp3': 'audio/mpeg',
    'jpg': 'image/jpeg',
    'jpeg': 'image/jpeg',
    'png': 'image/png',
    'gif': 'image/gif',
    'webp': 'image/webp',
})

TRUE_VALUES = ('1', 'true', 'yes', 'on')


def _env_int(environ, name, default):
    try:
        return int(environ.get(name, default))
    except (TypeError, ValueError):
        return default


def _env_float(environ, name, default):
    try:
        return float(environ.get(name, default))
    except (TypeError, ValueError):
        return default


@dataclass(frozen=True)
class ProxyConfig:
    """Settings shared by the fetcher, the rewriters and the stream forwarder"""

    backend_url: str = ''
    public_url: str = ''
    user_agent: str = DEFAULT_USER_AGENT
    fetch_timeout: float = 30.0
    connect_timeout: float = 10.0
    max_redirects: int = 5
    chunk_size: int = 65536
    verify_tls: bool = True
    egress_ip_url: str = ''
    media_types: Mapping[str, str] = field(default_factory=lambda: MEDIA_TYPES)
    host: str = '0.0.0.0'
    port: int = 8080
    log_level: str = 'INFO'
    log_file: Optional[str] = None

    @classmethod
    def from_env(cls, environ=None):
        """Build the configuration from environment variables"""
        env = os.environ if environ is None else environ
        return cls(
            backend_url=env.get('PROXY_BACKEND', '').strip().rstrip('/'),
            public_url=env.get('PUBLIC_URL', '').strip().rstrip('/'),
            user_agent=env.get('PROXY_USER_AGENT') or DEFAULT_USER_AGENT,
            fetch_timeout=_env_float(env, 'PROXY_TIMEOUT', 30.0),
            connect_timeout=_env_float(env, 'PROXY_CONNECT_TIMEOUT', 10.0),
            max_redirects=_env_int(env, 'PROXY_MAX_REDIRECTS', 5),
            chunk_size=_env_int(env, 'PROXY_CHUNK_SIZE', 65536),
            verify_tls=env.get('PROXY_VERIFY_TLS', 'true').lower() in TRUE_VALUES,
            egress_ip_url=env.get('PROXY_EGRESS_IP_URL', '').strip(),
            host=env.get('HOST', '0.0.0.0'),
            port=_env_int(env, 'PORT', 8080),
            log_level=env.get('PROXY_LOG_LEVEL', 'INFO').upper(),
            log_file=env.get('PROXY_LOG_FILE') or None,
        )
