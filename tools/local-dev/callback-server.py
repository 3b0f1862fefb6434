#!/usr/bin/env python3
"""
Local HTTP server for running the OAuth callback function without deploying.
Point the app's redirect URL at http://localhost:<port>/callback and install
the app on a development store.
"""
import os
import sys
import logging
from http.server import HTTPServer, BaseHTTPRequestHandler
from urllib.parse import urlparse, parse_qsl

# Make the function module importable
FUNCTION_DIR = os.path.join(os.path.dirname(os.path.abspath(__file__)), '../../lambda/oauth-callback')
sys.path.insert(0, FUNCTION_DIR)

import handler

PORT = int(sys.argv[1]) if len(sys.argv) > 1 else 8888
CALLBACK_PATHS = ('/callback', '/.netlify/functions/oauth-callback')


class CallbackHandler(BaseHTTPRequestHandler):
    def do_GET(self):
        parsed = urlparse(self.path)

        if parsed.path not in CALLBACK_PATHS:
            self.send_response(404)
            self.end_headers()
            return

        event = {
            'httpMethod': 'GET',
            'path': parsed.path,
            'headers': dict(self.headers),
            'queryStringParameters': dict(parse_qsl(parsed.query)) or None
        }
        result = handler.lambda_handler(event, None)

        self.send_response(result['statusCode'])
        for name, value in result.get('headers', {}).items():
            self.send_header(name, value)
        self.end_headers()
        self.wfile.write(result['body'].encode('utf-8'))


if __name__ == '__main__':
    logging.basicConfig(level=logging.INFO, format='%(asctime)s %(levelname)s %(message)s')
    server = HTTPServer(('localhost', PORT), CallbackHandler)
    print(f"Serving OAuth callback on http://localhost:{PORT}/callback")
    try:
        server.serve_forever()
    except KeyboardInterrupt:
        pass
