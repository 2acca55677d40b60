"""
HTTP endpoints: /fetch, /stream, /relay, /health and the service index
"""
from datetime import datetime, timezone

from flask import Blueprint, Response, current_app, jsonify, request, stream_with_context

from czproxy.errors import ValidationError
from czproxy.fetchers import DirectFetcher, build_envelope, egress_ip
from czproxy.logs import log_request
from czproxy.streaming import ResponseSink
from czproxy.urls import proxy_origin, validate_target_url

bp = Blueprint('proxy', __name__)

SERVICE_NAME = 'cz-web-proxy'

USAGE = {
    'fetch': '/fetch?url=<encoded_url>',
    'stream': '/stream?url=<encoded_url>',
    'relay': '/relay?url=<encoded_url>',
    'health': '/health',
}


def components():
    return current_app.extensions['czproxy']


def target_from_request():
    """The validated ``url`` query parameter"""
    url = request.args.get('url', '')
    if not url:
        raise ValidationError('Missing url parameter', usage=USAGE)
    return validate_target_url(url)


@bp.route('/')
def index():
    """Service description"""
    return jsonify({'status': 'ok', 'service': SERVICE_NAME, 'endpoints': USAGE})


@bp.route('/health')
def health():
    """Liveness check"""
    payload = {
        'status': 'ok',
        'service': SERVICE_NAME,
        'timestamp': datetime.now(timezone.utc).isoformat(),
    }
    config = components()['config']
    # Where origins see us coming from, to check the geo exit point
    if config.egress_ip_url:
        payload['ip'] = egress_ip(config)
    return jsonify(payload)


@bp.route('/fetch')
def fetch():
    """Fetch a page or asset; HTML and CSS come back with links rewritten"""
    target_url = target_from_request()
    origin = proxy_origin(request, components()['config'].public_url)
    result = components()['orchestrator'].handle(
        target_url, origin, referer=request.args.get('referer'))
    return Response(result.body, status=result.status_code,
                    content_type=result.content_type)


@bp.route('/stream')
def stream():
    """Relay media with Range support for seeking"""
    target_url = target_from_request()
    sink = ResponseSink()
    chunks = components()['forwarder'].forward(
        target_url, sink, range_header=request.headers.get('Range'))
    return Response(
        stream_with_context(chunks),
        status=sink.status_code,
        headers=sink.headers,
        direct_passthrough=True,
    )


@bp.route('/relay')
def relay():
    """Backend side: fetch directly and answer with the JSON envelope"""
    target_url = target_from_request()
    log_request('relay', 'GET', target_url)
    fetcher = DirectFetcher(components()['config'])
    resource = fetcher.fetch(target_url, referer=request.args.get('referer'))
    log_request('relay', 'GET', target_url, f"✓ {resource.status_code}")
    return jsonify(build_envelope(resource))
