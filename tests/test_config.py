#!/usr/bin/env python3
"""
Tests for environment configuration and logging setup
"""
import logging
import unittest

from czproxy.config import DEFAULT_USER_AGENT, ProxyConfig
from czproxy.logs import configure_logging, log_request


class TestProxyConfig(unittest.TestCase):
    """Test ProxyConfig.from_env"""

    def test_defaults(self):
        """Test values used when the environment is empty"""
        config = ProxyConfig.from_env({})
        self.assertEqual(config.backend_url, '')
        self.assertEqual(config.port, 8080)
        self.assertEqual(config.max_redirects, 5)
        self.assertEqual(config.chunk_size, 65536)
        self.assertTrue(config.verify_tls)
        self.assertEqual(config.user_agent, DEFAULT_USER_AGENT)
        self.assertEqual(config.media_types['mp3'], 'audio/mpeg')

    def test_environment_values(self):
        """Test that variables are read and normalized"""
        config = ProxyConfig.from_env({
            'PROXY_BACKEND': 'http://proxy.unas.cz/',
            'PUBLIC_URL': 'https://pub.example/',
            'PORT': '9000',
            'PROXY_TIMEOUT': '12.5',
            'PROXY_VERIFY_TLS': 'false',
            'PROXY_LOG_LEVEL': 'debug',
            'PROXY_EGRESS_IP_URL': ' https://api.ipify.org ',
        })
        self.assertEqual(config.backend_url, 'http://proxy.unas.cz')
        self.assertEqual(config.public_url, 'https://pub.example')
        self.assertEqual(config.port, 9000)
        self.assertEqual(config.fetch_timeout, 12.5)
        self.assertFalse(config.verify_tls)
        self.assertEqual(config.log_level, 'DEBUG')
        self.assertEqual(config.egress_ip_url, 'https://api.ipify.org')

    def test_bad_numbers_fall_back(self):
        """Test that unparseable numbers keep their defaults"""
        config = ProxyConfig.from_env({'PORT': 'eighty', 'PROXY_TIMEOUT': ''})
        self.assertEqual(config.port, 8080)
        self.assertEqual(config.fetch_timeout, 30.0)

    def test_media_types_read_only(self):
        """Test that the media type table cannot be changed at runtime"""
        with self.assertRaises(TypeError):
            ProxyConfig().media_types['mkv'] = 'video/x-matroska'


class TestLogging(unittest.TestCase):
    """Test the request log line"""

    def test_log_request_format(self):
        """Test the mode/status/method layout"""
        logger = configure_logging('INFO')
        self.assertEqual(logger.level, logging.INFO)
        with self.assertLogs('czproxy', level='INFO') as logs:
            log_request('fetch', 'GET', 'https://a.com/page', '✓ 200')
        self.assertIn('[FETCH   ] ✓ 200 GET  https://a.com/page', logs.output[0])


if __name__ == '__main__':
    unittest.main()
