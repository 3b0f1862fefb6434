"""
Serverless handler for completing the Shopify OAuth authorization code exchange.

Shopify redirects the merchant here with ``code``, ``shop`` and ``state`` query
parameters after the app is approved. The handler exchanges the code for an
offline access token and renders a page showing it, so an operator can copy the
token into the deployment's environment (``SHOPIFY_ACCESS_TOKEN``). Nothing is
persisted.

The ``state`` parameter is logged but NOT validated against a stored value, so
this endpoint offers no CSRF protection. It is meant for a trusted, operator-run
install flow.
"""

import os
import html
import json
import logging
from enum import Enum
from dataclasses import dataclass
from typing import Dict, Any, Optional

import requests

# Configure logging
logger = logging.getLogger()
logger.setLevel(logging.INFO)

TOKEN_EXCHANGE_TIMEOUT = 10  # seconds
REDIRECT_DELAY_MS = 30000
CODE_PREVIEW_LENGTH = 10
REQUEST_HEADERS = {
    'Content-Type': 'application/json',
    'Accept': 'application/json'
}


@dataclass(frozen=True)
class OAuthConfig:
    """App credentials used for the token exchange."""

    client_id: Optional[str]
    client_secret: Optional[str]

    @classmethod
    def from_env(cls) -> 'OAuthConfig':
        return cls(
            client_id=os.environ.get('SHOPIFY_API_KEY') or None,
            client_secret=os.environ.get('SHOPIFY_API_SECRET') or None
        )

    @property
    def is_complete(self) -> bool:
        return bool(self.client_id and self.client_secret)


class ExchangeOutcome(Enum):
    SUCCESS = 'success'
    MISSING_TOKEN = 'missing_token'
    HTTP_ERROR = 'http_error'
    TIMEOUT = 'timeout'
    NETWORK_ERROR = 'network_error'


@dataclass
class ExchangeResult:
    """Outcome of a single token exchange call."""

    outcome: ExchangeOutcome
    message: str = ''
    access_token: Optional[str] = None
    status_code: Optional[int] = None
    reason: Optional[str] = None
    headers: Optional[Dict[str, str]] = None
    payload: Any = None

    @property
    def has_response(self) -> bool:
        return self.status_code is not None


def lambda_handler(event: Dict[str, Any], context: Any) -> Dict[str, Any]:
    """
    Main handler for the OAuth callback.

    Args:
        event: API Gateway / Netlify event with queryStringParameters
        context: Function context object (unused)

    Returns:
        Response dict with statusCode, headers and body
    """
    try:
        return CallbackHandler(OAuthConfig.from_env()).handle(event)
    except Exception as e:
        logger.error(f"Unexpected error: {str(e)}", exc_info=True)
        return response(500, {'error': 'Internal server error'})


class CallbackHandler:
    """Validates the callback, exchanges the code and renders the result."""

    def __init__(self, config: OAuthConfig):
        self.config = config

    def handle(self, event: Dict[str, Any]) -> Dict[str, Any]:
        params = event.get('queryStringParameters') or {}
        code = params.get('code')
        shop = params.get('shop')
        state = params.get('state')

        logger.info("=== OAuth Callback Debug Info ===")
        all_params = dict(params)
        if code:
            all_params['code'] = preview_code(code)
        received = {
            'code': preview_code(code),
            'shop': shop,
            'state': state,
            'all_params': all_params
        }
        logger.info(f"Received parameters: {received}")

        if not code or not shop:
            logger.warning(f"Missing required parameters: has_code={bool(code)}, has_shop={bool(shop)}, "
                           f"code_length={len(code) if code else 0}")
            return response(400, {'error': 'Missing required parameters'})

        client_id = self.config.client_id
        client_secret = self.config.client_secret
        logger.info(f"Environment check: has_api_key={bool(client_id)}, has_api_secret={bool(client_secret)}, "
                    f"api_key_value={client_id or 'undefined'}, "
                    f"api_key_length={len(client_id) if client_id else 0}, "
                    f"api_secret_length={len(client_secret) if client_secret else 0}")

        if not self.config.is_complete:
            logger.error("Missing environment variables: SHOPIFY_API_KEY and SHOPIFY_API_SECRET are required")
            return response(500, {'error': 'Server configuration error - missing credentials'})

        result = exchange_code_for_token(shop, code, self.config)

        if result.outcome is ExchangeOutcome.SUCCESS:
            logger.info(f"Token response status: {result.status_code}")
            logger.info(f"Token response headers: {result.headers}")
            log_access_token(shop, result.access_token)
            return html_response(200, render_success_page(shop, result.access_token))

        if result.outcome is ExchangeOutcome.MISSING_TOKEN:
            logger.info(f"Token response status: {result.status_code}")
            logger.error(f"No access token in response: {result.payload!r}")
            return response(500, {'error': 'No access token received from Shopify'})

        if result.outcome in (ExchangeOutcome.HTTP_ERROR,
                              ExchangeOutcome.TIMEOUT,
                              ExchangeOutcome.NETWORK_ERROR):
            log_exchange_failure(result, token_url(shop), self.config, code)
            return html_response(500, render_error_page(result))

        raise ValueError(f"Unhandled exchange outcome: {result.outcome}")


def token_url(shop: str) -> str:
    return f"https://{shop}/admin/oauth/access_token"


def preview_code(code: Optional[str]) -> str:
    """Shorten an authorization code for logging."""
    if not code:
        return 'missing'
    return f"{code[:CODE_PREVIEW_LENGTH]}..."


def redacted_payload(config: OAuthConfig, code: str) -> Dict[str, Any]:
    return {
        'client_id': config.client_id,
        'client_secret': '[REDACTED]',
        'code': preview_code(code),
        'code_length': len(code)
    }


def exchange_code_for_token(shop: str, code: str, config: OAuthConfig) -> ExchangeResult:
    """
    Exchange an authorization code for an access token.

    Makes exactly one POST request; transport errors are returned as results
    rather than raised.

    Args:
        shop: Shop domain, e.g. example.myshopify.com
        code: Authorization code from the callback
        config: App credentials

    Returns:
        ExchangeResult describing what happened
    """
    url = token_url(shop)
    logger.info(f"Making token request to: {url}")
    logger.info(f"Request payload: {redacted_payload(config, code)}")

    try:
        resp = requests.post(
            url,
            json={
                'client_id': config.client_id,
                'client_secret': config.client_secret,
                'code': code
            },
            headers=REQUEST_HEADERS,
            timeout=TOKEN_EXCHANGE_TIMEOUT
        )
    except requests.Timeout as e:
        return ExchangeResult(
            outcome=ExchangeOutcome.TIMEOUT,
            message=f"Token request timed out after {TOKEN_EXCHANGE_TIMEOUT} seconds: {str(e)}"
        )
    except requests.RequestException as e:
        return ExchangeResult(outcome=ExchangeOutcome.NETWORK_ERROR, message=str(e))

    payload = decode_body(resp)
    headers = dict(resp.headers)

    if not 200 <= resp.status_code < 300:
        return ExchangeResult(
            outcome=ExchangeOutcome.HTTP_ERROR,
            message=f"Request failed with status code {resp.status_code}",
            status_code=resp.status_code,
            reason=resp.reason,
            headers=headers,
            payload=payload
        )

    access_token = payload.get('access_token') if isinstance(payload, dict) else None
    if not access_token:
        return ExchangeResult(
            outcome=ExchangeOutcome.MISSING_TOKEN,
            message='No access token in response',
            status_code=resp.status_code,
            headers=headers,
            payload=payload
        )

    # The token is rendered and logged as text whatever its JSON type
    if not isinstance(access_token, str):
        access_token = str(access_token)

    return ExchangeResult(
        outcome=ExchangeOutcome.SUCCESS,
        access_token=access_token,
        status_code=resp.status_code,
        headers=headers
    )


def decode_body(resp: requests.Response) -> Any:
    """Return the decoded JSON body, falling back to the raw text."""
    try:
        return resp.json()
    except ValueError:
        return resp.text or None


def log_access_token(shop: str, access_token: str) -> None:
    # Operators copy the token from the function logs into the environment
    logger.info("=" * 80)
    logger.info("SUCCESS! COPY THIS ACCESS TOKEN TO YOUR ENVIRONMENT VARIABLES")
    logger.info(f"ACCESS TOKEN: {access_token}")
    logger.info(f"SHOP: {shop}")
    logger.info("Add this to the environment variables as: SHOPIFY_ACCESS_TOKEN")
    logger.info("=" * 80)


def log_exchange_failure(result: ExchangeResult, url: str, config: OAuthConfig, code: str) -> None:
    logger.error("=== OAuth Error Details ===")
    logger.error(f"Error message: {result.message}")
    logger.error(f"Error kind: {result.outcome.value}")

    if result.has_response:
        logger.error(f"Response status: {result.status_code}")
        logger.error(f"Response headers: {result.headers}")
        logger.error(f"Response data: {result.payload!r}")
        logger.error(f"Response status text: {result.reason}")
    else:
        logger.error("Request made but no response received")

    request_config = {
        'url': url,
        'method': 'post',
        'headers': REQUEST_HEADERS,
        'data': redacted_payload(config, code)
    }
    logger.error(f"Request config: {request_config}")
    logger.error("=== End Error Details ===")


SUCCESS_PAGE = """
<html>
  <head>
    <title>OAuth Success</title>
    <style>
      body {{ font-family: Arial, sans-serif; max-width: 600px; margin: 50px auto; padding: 20px; }}
      .success {{ background: #d4edda; border: 1px solid #c3e6cb; padding: 15px; border-radius: 5px; }}
      .token {{ background: #f8f9fa; border: 1px solid #dee2e6; padding: 10px; font-family: monospace; word-break: break-all; }}
    </style>
  </head>
  <body>
    <div class="success">
      <h1>OAuth Authentication Successful!</h1>
      <p><strong>Shop:</strong> {shop}</p>
      <p><strong>Access Token:</strong></p>
      <div class="token">{access_token}</div>
      <br>
      <p><strong>Next Step:</strong> Copy the access token above and add it to your environment variables as <code>SHOPIFY_ACCESS_TOKEN</code></p>
    </div>
    <script>
      // Auto-redirect after 30 seconds
      setTimeout(function() {{
        window.top.location.href = {redirect_url};
      }}, {delay});
    </script>
  </body>
</html>
"""

ERROR_PAGE = """
<html>
  <head>
    <title>OAuth Error</title>
    <style>
      body {{ font-family: Arial, sans-serif; max-width: 600px; margin: 50px auto; padding: 20px; }}
      .error {{ background: #f8d7da; border: 1px solid #f5c6cb; padding: 15px; border-radius: 5px; }}
    </style>
  </head>
  <body>
    <div class="error">
      <h1>OAuth Error</h1>
      <p><strong>Error:</strong> {message}</p>
      <p><strong>Status:</strong> {status}</p>
      <p><strong>Details:</strong> {details}</p>
      <p>Check the function logs for more detailed information.</p>
    </div>
  </body>
</html>
"""


def render_success_page(shop: str, access_token: str) -> str:
    redirect_url = f"https://{shop}/admin/apps"
    return SUCCESS_PAGE.format(
        shop=html.escape(shop),
        access_token=html.escape(access_token),
        # </ is escaped so the literal cannot close the script element
        redirect_url=json.dumps(redirect_url).replace('</', '<\\/'),
        delay=REDIRECT_DELAY_MS
    )


def render_error_page(result: ExchangeResult) -> str:
    details = result.payload if result.payload is not None else 'No details'
    return ERROR_PAGE.format(
        message=html.escape(result.message),
        status=result.status_code if result.status_code is not None else 'Unknown',
        details=html.escape(json.dumps(details, default=str))
    )


def html_response(status_code: int, body: str) -> Dict[str, Any]:
    return {
        'statusCode': status_code,
        'headers': {
            'Content-Type': 'text/html'
        },
        'body': body
    }


def response(status_code: int, body: Dict[str, Any]) -> Dict[str, Any]:
    """
    Format a JSON response.

    Args:
        status_code: HTTP status code
        body: Response body dictionary

    Returns:
        Response object
    """
    return {
        'statusCode': status_code,
        'headers': {
            'Content-Type': 'application/json'
        },
        'body': json.dumps(body)
    }
