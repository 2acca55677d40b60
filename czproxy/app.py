"""
Application factory: wires configuration, fetcher, orchestrator and
forwarder into a Flask app
"""
from flask import Flask, jsonify

from czproxy.config import ProxyConfig
from czproxy.errors import ProxyError
from czproxy.fetchers import make_fetcher
from czproxy.logs import logger
from czproxy.orchestrator import FetchOrchestrator
from czproxy.routes import bp
from czproxy.streaming import StreamForwarder

CORS_HEADERS = {
    'Access-Control-Allow-Origin': '*',
    'Access-Control-Allow-Methods': 'GET, POST, HEAD, OPTIONS',
    'Access-Control-Allow-Headers': 'Content-Type, Range, X-Requested-With',
    'Access-Control-Expose-Headers': 'Content-Length, Content-Range, Accept-Ranges',
}


def create_app(config=None, fetcher=None, forwarder=None):
    """Build the proxy app; collaborators can be injected for tests"""
    config = config or ProxyConfig.from_env()
    app = Flask(__name__)
    app.extensions['czproxy'] = {
        'config': config,
        'orchestrator': FetchOrchestrator(fetcher or make_fetcher(config)),
        'forwarder': forwarder or StreamForwarder(config),
    }
    app.register_blueprint(bp)

    @app.errorhandler(ProxyError)
    def handle_proxy_error(error):
        if error.status_code >= 500:
            logger.error(f"[ERROR] {error.message}")
        else:
            logger.warning(f"[ERROR] {error.status_code} {error.message}")
        return jsonify(error.to_dict()), error.status_code

    @app.after_request
    def add_cors_headers(response):
        for name, value in CORS_HEADERS.items():
            response.headers.setdefault(name, value)
        return response

    return app
