#!/usr/bin/env python3
"""
Tests for the HTTP surface: /fetch, /stream, /relay, /health and CORS
"""
import unittest
from unittest.mock import Mock, patch

import requests
from requests.structures import CaseInsensitiveDict

from czproxy.app import create_app
from czproxy.config import ProxyConfig
from czproxy.errors import UpstreamError
from czproxy.fetchers import FetchedResource
from czproxy.streaming import StreamForwarder
from czproxy.urls import decode_proxy_url, encode_proxy_url


class StubFetcher:
    def __init__(self, result):
        self.result = result

    def fetch(self, url, referer=None):
        if isinstance(self.result, Exception):
            raise self.result
        return self.result


class ProxyAppTestCase(unittest.TestCase):
    """Base test case with an app wired to stub collaborators"""

    page = FetchedResource(200, 'text/html; charset=utf-8',
                           b'<a href="/next">n</a>', 'https://a.com/page')

    def setUp(self):
        self.http = Mock()
        self.config = ProxyConfig()
        self.app = create_app(
            self.config,
            fetcher=StubFetcher(self.page),
            forwarder=StreamForwarder(self.config, http=self.http),
        )
        self.client = self.app.test_client()


class TestServiceEndpoints(ProxyAppTestCase):
    """Test index and health"""

    def test_health(self):
        """Test the liveness payload"""
        resp = self.client.get('/health')
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.get_json()['status'], 'ok')
        self.assertIn('timestamp', resp.get_json())
        self.assertNotIn('ip', resp.get_json())

    def test_health_reports_egress_ip(self):
        """Test that the public address is included when a lookup service is set"""
        self.app.extensions['czproxy']['config'] = ProxyConfig(
            egress_ip_url='https://api.ipify.org')
        with patch('czproxy.routes.egress_ip', return_value='185.8.1.2') as lookup:
            resp = self.client.get('/health')
        self.assertEqual(resp.get_json()['ip'], '185.8.1.2')
        lookup.assert_called_once()

    def test_index_lists_endpoints(self):
        """Test that / describes the endpoints"""
        endpoints = self.client.get('/').get_json()['endpoints']
        self.assertEqual(set(endpoints), {'fetch', 'stream', 'relay', 'health'})

    def test_cors_headers(self):
        """Test that every response carries CORS headers"""
        resp = self.client.get('/health')
        self.assertEqual(resp.headers['Access-Control-Allow-Origin'], '*')
        self.assertIn('Range', resp.headers['Access-Control-Allow-Headers'])
        self.assertIn('Content-Range', resp.headers['Access-Control-Expose-Headers'])

    def test_preflight(self):
        """Test that OPTIONS preflight is answered"""
        resp = self.client.options('/stream')
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.headers['Access-Control-Allow-Origin'], '*')


class TestFetchEndpoint(ProxyAppTestCase):
    """Test /fetch"""

    def test_missing_url(self):
        """Test that a missing url parameter is a 400 with usage"""
        resp = self.client.get('/fetch')
        self.assertEqual(resp.status_code, 400)
        data = resp.get_json()
        self.assertFalse(data['success'])
        self.assertEqual(data['error'], 'Missing url parameter')
        self.assertIn('stream', data['usage'])

    def test_invalid_url(self):
        """Test that a malformed url is rejected"""
        resp = self.client.get('/fetch', query_string={'url': 'not a url'})
        self.assertEqual(resp.status_code, 400)
        self.assertEqual(resp.get_json()['error'], 'Invalid URL format')

    def test_rewritten_page(self):
        """Test that links point back at this proxy"""
        resp = self.client.get('/fetch', query_string={'url': 'https://a.com/page'})
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.headers['Content-Type'], 'text/html; charset=utf-8')
        link = encode_proxy_url('https://a.com/next', 'http://localhost')
        self.assertEqual(
            resp.data, f'<html><head></head><body><a href="{link}">n</a></body></html>'.encode())

    def test_forwarded_origin(self):
        """Test that X-Forwarded-* decide the origin of rewritten links"""
        resp = self.client.get(
            '/fetch', query_string={'url': 'https://a.com/page'},
            headers={'X-Forwarded-Proto': 'https', 'X-Forwarded-Host': 'proxy.example'})
        href = resp.data.decode().split('href="')[1].split('"')[0]
        self.assertTrue(href.startswith('https://proxy.example/fetch?url='))
        self.assertEqual(decode_proxy_url(href), 'https://a.com/next')

    def test_upstream_error(self):
        """Test that fetch failures come back as a JSON 502"""
        self.app.extensions['czproxy']['orchestrator'].fetcher = StubFetcher(
            UpstreamError('Request error: refused'))
        resp = self.client.get('/fetch', query_string={'url': 'https://a.com/'})
        self.assertEqual(resp.status_code, 502)
        self.assertEqual(resp.get_json(),
                         {'success': False, 'error': 'Request error: refused'})


class TestStreamEndpoint(ProxyAppTestCase):
    """Test /stream"""

    def setUp(self):
        super().setUp()
        self.http.head.return_value = Mock(
            status_code=200, url='https://cdn.example/v.mp4',
            headers=CaseInsensitiveDict({'Content-Type': 'video/mp4'}))

    def test_missing_url(self):
        """Test that a missing url parameter is a 400"""
        self.assertEqual(self.client.get('/stream').status_code, 400)
        self.http.head.assert_not_called()

    def test_partial_content(self):
        """Test Range passthrough end to end"""
        upstream = Mock(status_code=206, headers=CaseInsensitiveDict({
            'Content-Range': 'bytes 100-199/500', 'Content-Length': '100'}))
        upstream.iter_content.return_value = iter([b'a' * 50, b'b' * 50])
        self.http.get.return_value = upstream

        resp = self.client.get('/stream', query_string={'url': 'https://cdn.example/v.mp4'},
                               headers={'Range': 'bytes=100-199'})

        self.assertEqual(resp.status_code, 206)
        self.assertEqual(resp.headers['Content-Range'], 'bytes 100-199/500')
        self.assertEqual(resp.headers['Accept-Ranges'], 'bytes')
        self.assertEqual(resp.headers['Content-Type'], 'video/mp4')
        self.assertEqual(resp.data, b'a' * 50 + b'b' * 50)
        self.assertEqual(self.http.get.call_args[1]['headers']['Range'], 'bytes=100-199')

    def test_full_content(self):
        """Test a plain request without Range"""
        upstream = Mock(status_code=200, headers=CaseInsensitiveDict({'Content-Length': '4'}))
        upstream.iter_content.return_value = iter([b'data'])
        self.http.get.return_value = upstream

        resp = self.client.get('/stream', query_string={'url': 'https://cdn.example/v.mp4'})

        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.data, b'data')
        self.assertNotIn('Range', self.http.get.call_args[1]['headers'])

    def test_failure_before_first_byte(self):
        """Test that a body connection dying on its first read is a JSON 502"""
        def broken():
            raise requests.exceptions.ChunkedEncodingError('connection reset')
            yield b''

        upstream = Mock(status_code=200, headers=CaseInsensitiveDict({'Content-Length': '500'}))
        upstream.iter_content.return_value = broken()
        self.http.get.return_value = upstream

        resp = self.client.get('/stream', query_string={'url': 'https://cdn.example/v.mp4'})

        self.assertEqual(resp.status_code, 502)
        data = resp.get_json()
        self.assertFalse(data['success'])
        self.assertIn('before the first byte', data['error'])
        self.assertNotEqual(resp.headers.get('Content-Length'), '500')
        upstream.close.assert_called_once()

    def test_probe_not_found(self):
        """Test that a 404 probe yields an error response and no body stream"""
        self.http.head.return_value = Mock(
            status_code=404, url='https://cdn.example/v.mp4', headers=CaseInsensitiveDict())

        resp = self.client.get('/stream', query_string={'url': 'https://cdn.example/v.mp4'})

        self.assertEqual(resp.status_code, 404)
        self.assertEqual(resp.get_json()['error'], 'Remote server returned HTTP 404')
        self.http.get.assert_not_called()


class TestRelayEndpoint(ProxyAppTestCase):
    """Test /relay, the JSON envelope backend"""

    @patch('czproxy.routes.DirectFetcher')
    def test_envelope(self, fetcher_cls):
        """Test that the relay answers with the envelope"""
        fetcher_cls.return_value.fetch.return_value = FetchedResource(
            200, 'text/plain', b'hello', 'https://a.com/final', {'Server': 'x'})

        resp = self.client.get('/relay', query_string={'url': 'https://a.com/',
                                                       'referer': 'https://r/'})

        data = resp.get_json()
        self.assertTrue(data['success'])
        self.assertEqual(data['body'], 'hello')
        self.assertEqual(data['finalUrl'], 'https://a.com/final')
        self.assertEqual(data['headers'], {'server': 'x'})
        fetcher_cls.return_value.fetch.assert_called_once_with(
            'https://a.com/', referer='https://r/')

    def test_invalid_url(self):
        """Test that the relay validates its input"""
        resp = self.client.get('/relay', query_string={'url': 'javascript:alert(1)'})
        self.assertEqual(resp.status_code, 400)


if __name__ == '__main__':
    unittest.main()
