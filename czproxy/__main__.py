#!/usr/bin/env python3
"""
Run the proxy: python -m czproxy
"""
from czproxy.app import create_app
from czproxy.config import ProxyConfig
from czproxy.logs import configure_logging


def main():
    config = ProxyConfig.from_env()
    configure_logging(config.log_level, config.log_file)
    app = create_app(config)

    print("\n" + "="*70)
    print("CZ WEB PROXY - Rewriting reverse proxy")
    print("="*70)
    print("\nEndpoints:")
    print("  Fetch (rewritten)   → /fetch?url=...")
    print("  Stream (Range)      → /stream?url=...")
    print("  Relay (JSON)        → /relay?url=...")
    print("  Health              → /health")
    print(f"\nBackend: {config.backend_url or 'direct'}")
    print("="*70 + "\n")
    print(f"Starting server on http://{config.host}:{config.port}")

    app.run(host=config.host, port=config.port, debug=False, threaded=True)


if __name__ == '__main__':
    main()
