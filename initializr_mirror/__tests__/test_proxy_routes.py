"""
Tests for the forwarding routes and the locally served text endpoints.

The upstream is replaced by a fake requests response so no network is used.
"""
import gzip
import unittest
from unittest.mock import patch
import sys
import os

import brotli
import requests
from bs4 import BeautifulSoup
from requests.structures import CaseInsensitiveDict
from urllib3.exceptions import ProtocolError, ReadTimeoutError
from werkzeug.datastructures import Headers

# Add parent directory to path to import app modules
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', '..'))

from initializr_mirror import create_app
from initializr_mirror.features.proxy.services.mutations import DEFAULT_DESCRIPTION, DEFAULT_SCRIPT_SRC, RewriteRules
from initializr_mirror.features.proxy.services.urls import build_target_url, upstream_host


HOME_PAGE = b'''<!DOCTYPE html>
<html>
<head>
<meta charset="utf-8">
<title>Spring Initializr</title>
<meta name="description" content="Initializr generates spring boot project">
</head>
<body>
<div id="app"></div>
<script src="/static/gtag.js"></script>
<script>window.dataLayer = [];</script>
<script src="/static/main.js"></script>
</body>
</html>'''


class FakeRaw:
    """Stands in for the urllib3 response behind requests.Response.raw."""

    def __init__(self, body, headers, error=None):
        self.headers = headers
        self.reads = 0
        self._body = body
        self._pos = 0
        self._error = error

    def read(self, amt=None, decode_content=True):
        self.reads += 1
        if self._error is not None:
            raise self._error
        end = len(self._body) if amt is None else self._pos + amt
        chunk = self._body[self._pos:end]
        self._pos += len(chunk)
        return chunk

    def stream(self, amt, decode_content=True):
        while self._pos < len(self._body):
            chunk = self._body[self._pos:self._pos + amt]
            self._pos += len(chunk)
            yield chunk


class FakeUpstream:
    def __init__(self, status=200, body=b'', headers=None, error=None):
        header_list = list(headers or [])
        self.status_code = status
        self.headers = CaseInsensitiveDict(header_list)
        self.raw = FakeRaw(body, Headers(header_list), error=error)
        self.url = 'https://start.spring.io/'
        self.closed = False

    def close(self):
        self.closed = True


class TestProxyRoutes(unittest.TestCase):
    """Forwarding, home-page rewrite and pass-through through the Flask app."""

    def setUp(self):
        self.app = create_app({'TESTING': True, 'UPSTREAM_URL': 'https://start.spring.io/'})
        self.client = self.app.test_client()
        patcher = patch('initializr_mirror.features.proxy.routes._SESSION')
        self.session = patcher.start()
        self.addCleanup(patcher.stop)

    def upstream(self, **kwargs):
        fake = FakeUpstream(**kwargs)
        self.session.request.return_value = fake
        return fake

    def test_home_page_is_rewritten(self):
        body = gzip.compress(HOME_PAGE)
        fake = self.upstream(body=body, headers=[
            ('Content-Type', 'text/html;charset=UTF-8'),
            ('Content-Encoding', 'gzip'),
            ('Content-Length', str(len(body))),
            ('Transfer-Encoding', 'chunked'),
            ('Vary', 'Accept-Encoding'),
        ])

        resp = self.client.get('/', headers={'Accept-Encoding': 'gzip, br'})

        self.assertEqual(resp.status_code, 200)
        self.assertNotIn('Content-Encoding', resp.headers)
        self.assertNotIn('Transfer-Encoding', resp.headers)
        self.assertEqual(resp.headers['Content-Length'], str(len(resp.data)))
        self.assertEqual(resp.headers['Content-Type'], 'text/html;charset=UTF-8')
        self.assertEqual(resp.headers['Vary'], 'Accept-Encoding')
        self.assertTrue(fake.closed)

        soup = BeautifulSoup(resp.data, 'html.parser')
        self.assertEqual(soup.find('meta', attrs={'name': 'description'})['content'], DEFAULT_DESCRIPTION)
        self.assertIsNotNone(soup.find('meta', attrs={'name': 'keywords'}))
        self.assertIsNotNone(soup.head.find('script', src=DEFAULT_SCRIPT_SRC))
        # Removal of upstream body scripts is off unless configured.
        self.assertEqual(len(soup.body.find_all('script')), 3)

    def test_body_script_removal_when_enabled(self):
        self.app.config['REWRITE_RULES'] = RewriteRules(remove_body_scripts=True)
        self.upstream(body=brotli.compress(HOME_PAGE), headers=[
            ('Content-Type', 'text/html'),
            ('Content-Encoding', 'br'),
        ])

        resp = self.client.get('/')

        soup = BeautifulSoup(resp.data, 'html.parser')
        self.assertEqual(soup.body.find_all('script'), [])
        self.assertIsNotNone(soup.body.find('div', id='app'))

    def test_request_is_forwarded_to_upstream_host(self):
        self.upstream(body=b'{}', headers=[('Content-Type', 'application/json')])

        self.client.post(
            '/starter.zip?type=maven-project&language=java',
            data=b'dependencies=web',
            headers={'Connection': 'keep-alive', 'User-Agent': 'curl/8'},
        )

        kwargs = self.session.request.call_args.kwargs
        self.assertEqual(kwargs['method'], 'POST')
        self.assertEqual(kwargs['url'], 'https://start.spring.io/starter.zip?type=maven-project&language=java')
        self.assertEqual(kwargs['data'], b'dependencies=web')
        self.assertFalse(kwargs['allow_redirects'])
        self.assertTrue(kwargs['stream'])

        headers = kwargs['headers']
        self.assertEqual(headers['Host'], 'start.spring.io')
        self.assertEqual(headers['X-User-Agent'], 'https://start.springboot.io/about')
        self.assertEqual(headers['User-Agent'], 'curl/8')
        self.assertEqual(headers['Accept-Encoding'], 'identity')
        self.assertNotIn('Connection', headers)

    def test_other_paths_stream_through_unchanged(self):
        body = gzip.compress(b'<html><head></head><body>docs</body></html>')
        fake = self.upstream(body=body, headers=[
            ('Content-Type', 'text/html'),
            ('Content-Encoding', 'gzip'),
            ('Content-Length', str(len(body))),
        ])

        resp = self.client.get('/guides')

        self.assertEqual(resp.data, body)
        self.assertEqual(resp.headers['Content-Encoding'], 'gzip')
        self.assertEqual(resp.headers['Content-Length'], str(len(body)))
        self.assertTrue(fake.closed)

    def test_upstream_headers_without_content_type_stay_that_way(self):
        self.upstream(status=204, body=b'', headers=[])

        resp = self.client.delete('/api/thing')

        self.assertEqual(resp.status_code, 204)
        self.assertNotIn('Content-Type', resp.headers)

    def test_unknown_encoding_on_home_page_passes_through(self):
        body = b'\x28\xb5\x2f\xfd opaque'
        self.upstream(body=body, headers=[('Content-Type', 'text/html'), ('Content-Encoding', 'zstd')])

        resp = self.client.get('/')

        self.assertEqual(resp.data, body)
        self.assertEqual(resp.headers['Content-Encoding'], 'zstd')

    def test_corrupt_home_page_falls_back_to_original_bytes(self):
        compressed = brotli.compress(HOME_PAGE)
        corrupt = compressed[: len(compressed) // 2]
        self.upstream(body=corrupt, headers=[('Content-Type', 'text/html'), ('Content-Encoding', 'br')])

        resp = self.client.get('/')

        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.data, corrupt)
        self.assertEqual(resp.headers['Content-Encoding'], 'br')

    def test_error_status_home_page_is_not_rewritten(self):
        self.upstream(status=503, body=HOME_PAGE, headers=[('Content-Type', 'text/html')])

        resp = self.client.get('/')

        self.assertEqual(resp.status_code, 503)
        self.assertEqual(resp.data, HOME_PAGE)

    def test_oversized_home_page_is_not_rewritten(self):
        # No Content-Length: only limit + 1 bytes are buffered, then the rest streams.
        self.app.config['REWRITE_MAX_BYTES'] = 10
        fake = self.upstream(body=HOME_PAGE, headers=[('Content-Type', 'text/html')])

        resp = self.client.get('/')

        self.assertEqual(resp.data, HOME_PAGE)
        self.assertEqual(fake.raw.reads, 1)
        self.assertTrue(fake.closed)

    def test_declared_oversized_home_page_is_never_buffered(self):
        self.app.config['REWRITE_MAX_BYTES'] = 10
        fake = self.upstream(body=HOME_PAGE, headers=[
            ('Content-Type', 'text/html'),
            ('Content-Length', str(len(HOME_PAGE))),
        ])

        resp = self.client.get('/')

        self.assertEqual(fake.raw.reads, 0)
        self.assertEqual(resp.data, HOME_PAGE)
        self.assertEqual(resp.headers['Content-Length'], str(len(HOME_PAGE)))
        self.assertTrue(fake.closed)

    def test_malformed_content_length_still_buffers_within_limit(self):
        self.upstream(body=HOME_PAGE, headers=[('Content-Type', 'text/html'), ('Content-Length', 'lots')])

        resp = self.client.get('/')

        soup = BeautifulSoup(resp.data, 'html.parser')
        self.assertEqual(soup.find('meta', attrs={'name': 'description'})['content'], DEFAULT_DESCRIPTION)

    def test_partial_home_page_is_not_rewritten(self):
        chunk = HOME_PAGE[:100]
        self.upstream(status=206, body=chunk, headers=[
            ('Content-Type', 'text/html'),
            ('Content-Range', f'bytes 0-99/{len(HOME_PAGE)}'),
            ('Content-Length', '100'),
        ])

        resp = self.client.get('/', headers={'Range': 'bytes=0-99'})

        self.assertEqual(resp.status_code, 206)
        self.assertEqual(resp.data, chunk)
        self.assertEqual(resp.headers['Content-Range'], f'bytes 0-99/{len(HOME_PAGE)}')

    def test_errors_while_buffering_home_page_map_to_gateway_statuses(self):
        cases = (
            (ReadTimeoutError(None, '/', 'Read timed out.'), 504),
            (ProtocolError('Connection broken: IncompleteRead'), 502),
        )
        for error, status in cases:
            with self.subTest(error=type(error).__name__):
                fake = self.upstream(body=HOME_PAGE, headers=[('Content-Type', 'text/html')], error=error)
                resp = self.client.get('/')
                self.assertEqual(resp.status_code, status)
                self.assertTrue(fake.closed)

    def test_unexpected_rewrite_error_delivers_original(self):
        body = gzip.compress(HOME_PAGE)
        self.upstream(body=body, headers=[('Content-Type', 'text/html'), ('Content-Encoding', 'gzip')])

        with patch('initializr_mirror.features.proxy.routes.rewrite_response', side_effect=RuntimeError('boom')):
            resp = self.client.get('/')

        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.data, body)
        self.assertEqual(resp.headers['Content-Encoding'], 'gzip')

    def test_upstream_errors_map_to_gateway_statuses(self):
        cases = (
            (requests.exceptions.ConnectionError('refused'), 503),
            (requests.exceptions.ReadTimeout('slow'), 504),
            (requests.exceptions.TooManyRedirects('loop'), 502),
            (RuntimeError('unexpected'), 500),
        )
        for error, status in cases:
            with self.subTest(error=type(error).__name__):
                self.session.request.side_effect = error
                resp = self.client.get('/')
                self.assertEqual(resp.status_code, status)


class TestUpstreamUrls(unittest.TestCase):

    def test_build_target_url(self):
        self.assertEqual(build_target_url('https://start.spring.io/', '/'), 'https://start.spring.io/')
        self.assertEqual(
            build_target_url('https://start.spring.io', '/metadata/client', 'a=1&b=2'),
            'https://start.spring.io/metadata/client?a=1&b=2',
        )
        self.assertEqual(build_target_url('http://mirror.local:8081/base/', 'x'), 'http://mirror.local:8081/base/x')

    def test_upstream_host(self):
        self.assertEqual(upstream_host('https://start.spring.io/'), 'start.spring.io')
        self.assertEqual(upstream_host('http://mirror.local:8081/base/'), 'mirror.local:8081')


class TestSiteRoutes(unittest.TestCase):
    """/about and /robots.txt are served locally, never proxied."""

    def setUp(self):
        self.app = create_app({'TESTING': True})
        self.client = self.app.test_client()
        patcher = patch('initializr_mirror.features.proxy.routes._SESSION')
        self.session = patcher.start()
        self.addCleanup(patcher.stop)

    def test_about(self):
        resp = self.client.get('/about')

        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.headers['Content-Type'], 'text/plain; charset=utf-8')
        self.assertIn('To Pivotal', resp.get_data(as_text=True))
        self.assertIn('Email: admin@springboot.io', resp.get_data(as_text=True))
        self.session.request.assert_not_called()

    def test_robots(self):
        resp = self.client.get('/robots.txt')

        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.headers['Content-Type'], 'text/plain; charset=utf-8')
        self.assertEqual(resp.get_data(as_text=True), 'User-agent: *')
        self.session.request.assert_not_called()


if __name__ == '__main__':
    unittest.main()
