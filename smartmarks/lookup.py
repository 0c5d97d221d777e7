"""
Registered-user lookup.

Answers "is this email already registered?" by proxying a single request to
the auth provider's admin users endpoint with the service-role key. Used to
pre-check a sign-up before starting an OAuth flow.

Served over HTTP as:

    POST /api/check-user   {"email": "..."}  ->  {"exists": true|false}
                                             or  {"error": "..."}

Usage:
    smartmarks serve              # Start on default port 8000
    smartmarks serve --port 3000  # Custom port
"""
import json
import logging
from functools import partial
from http.server import HTTPServer, BaseHTTPRequestHandler
from typing import Any, Dict, Optional, Tuple
from urllib.parse import urlparse

import requests

from smartmarks.config import get_config

logger = logging.getLogger(__name__)

CHECK_USER_PATH = "/api/check-user"


def check_user_exists(
    email: Optional[str],
    auth_url: Optional[str] = None,
    service_role_key: Optional[str] = None,
    timeout: Optional[int] = None,
) -> Tuple[int, Dict[str, Any]]:
    """
    Look up an email with the admin users API.

    Args:
        email: Address to check
        auth_url: Base URL of the auth provider (config ``auth_url`` by default)
        service_role_key: Admin key (config ``service_role_key`` by default)
        timeout: Request timeout in seconds

    Returns:
        (status, payload) where payload is {"exists": bool} on success and
        {"error": message} otherwise
    """
    config = get_config()
    email = str(email or "").strip()
    if not email:
        return 400, {"error": "Email is required"}

    auth_url = auth_url or config.auth_url
    service_role_key = service_role_key or config.service_role_key
    if not auth_url or not service_role_key:
        return 500, {"error": "Server misconfigured: missing auth URL or service role key"}

    url = f"{auth_url.rstrip('/')}/auth/v1/admin/users"
    headers = {
        "Authorization": f"Bearer {service_role_key}",
        "apikey": service_role_key,
        "Content-Type": "application/json",
        "User-Agent": config.user_agent,
    }

    try:
        response = requests.get(
            url,
            params={"email": email},
            headers=headers,
            timeout=timeout or config.timeout,
            verify=config.verify_ssl,
        )
    except requests.RequestException as e:
        logger.error("Admin lookup failed: %s", e)
        return 500, {"error": str(e)}

    if not response.ok:
        logger.warning("Admin API returned %s", response.status_code)
        return response.status_code, {"error": "Admin API error", "details": response.text}

    try:
        data = response.json()
    except ValueError as e:
        return 500, {"error": f"Malformed admin API response: {e}"}

    # A list of matching users is expected
    exists = isinstance(data, list) and len(data) > 0
    return 200, {"exists": exists}


class LookupHandler(BaseHTTPRequestHandler):
    """HTTP request handler for the check-user endpoint."""

    def __init__(self, *args, auth_url: Optional[str] = None,
                 service_role_key: Optional[str] = None, **kwargs):
        self.auth_url = auth_url
        self.service_role_key = service_role_key
        super().__init__(*args, **kwargs)

    def send_json(self, data: Any, status: int = 200):
        """Send JSON response."""
        body = json.dumps(data).encode()
        self.send_response(status)
        self.send_header('Content-Type', 'application/json')
        self.send_header('Content-Length', str(len(body)))
        self.end_headers()
        self.wfile.write(body)

    def do_GET(self):
        if urlparse(self.path).path == CHECK_USER_PATH:
            self.send_json({'error': 'Use POST with JSON { email }'}, 400)
        else:
            self.send_json({'error': 'Not found'}, 404)

    def do_POST(self):
        if urlparse(self.path).path != CHECK_USER_PATH:
            self.send_json({'error': 'Not found'}, 404)
            return

        content_length = int(self.headers.get('Content-Length', 0))
        body = self.rfile.read(content_length).decode() if content_length > 0 else ''
        try:
            data = json.loads(body) if body else {}
        except json.JSONDecodeError:
            self.send_json({'error': 'Invalid JSON'}, 400)
            return
        if not isinstance(data, dict):
            data = {}

        status, payload = check_user_exists(
            data.get('email'),
            auth_url=self.auth_url,
            service_role_key=self.service_role_key,
        )
        self.send_json(payload, status)

    def log_message(self, format, *args):
        logger.info("%s - %s", self.address_string(), format % args)


def create_server(host: str = '127.0.0.1', port: int = 8000,
                  auth_url: Optional[str] = None,
                  service_role_key: Optional[str] = None) -> HTTPServer:
    handler = partial(LookupHandler, auth_url=auth_url, service_role_key=service_role_key)
    return HTTPServer((host, port), handler)


def run_server(host: str = '127.0.0.1', port: int = 8000):
    """Serve the check-user endpoint until interrupted."""
    server = create_server(host, port)
    logger.info("Serving %s on http://%s:%s", CHECK_USER_PATH, host, port)
    try:
        server.serve_forever()
    finally:
        server.server_close()
