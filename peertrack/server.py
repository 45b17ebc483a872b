"""Quart HTTP binding of the signaling service.

Routes under `/api` require authentication. `/health` and `/metrics` are
public. Errors are returned as JSON `{"error": message}` with a status code
chosen by the exception type; unexpected exceptions are logged and
returned as a generic 500 without internal detail.
"""
from __future__ import annotations

import json
import logging
import time
from typing import Any

import quart
from quart import request
from quart import Response
from werkzeug.exceptions import HTTPException

from peertrack.auth import Authenticator
from peertrack.auth import NullAuthenticator
from peertrack.constants import MAX_CONTENT_LENGTH_DEFAULT
from peertrack.exceptions import ForbiddenError
from peertrack.exceptions import InternalError
from peertrack.exceptions import InvalidRequestError
from peertrack.exceptions import NotFoundError
from peertrack.exceptions import PeerTrackError
from peertrack.exceptions import ServiceUnavailableError
from peertrack.exceptions import UnauthorizedError
from peertrack.service import PeerTrackService
from peertrack.sweep import MembershipSweeper
from peertrack.utils.tasks import cancel_and_wait

logger = logging.getLogger(__name__)

api_blueprint = quart.Blueprint('api', __name__)
public_blueprint = quart.Blueprint('public', __name__)

_STATUS_CODES: dict[type[PeerTrackError], int] = {
    InvalidRequestError: 400,
    UnauthorizedError: 401,
    ForbiddenError: 403,
    NotFoundError: 404,
    ServiceUnavailableError: 503,
    InternalError: 500,
}


def create_app(
    service: PeerTrackService,
    authenticator: Authenticator | None = None,
    *,
    sweeper: MembershipSweeper | None = None,
    max_content_length: int | None = MAX_CONTENT_LENGTH_DEFAULT,
) -> quart.Quart:
    """Create the quart app and register routes.

    Args:
        service: Initialized service to forward quart routes to.
        authenticator: Authenticator for `/api` routes. Defaults to
            [`NullAuthenticator`][peertrack.auth.NullAuthenticator].
        sweeper: Optional membership sweeper started while the app is
            serving.
        max_content_length: Max request body size in bytes.

    Returns:
        Quart app.
    """
    app = quart.Quart(__name__)

    app.config['service'] = service
    app.config['authenticator'] = (
        NullAuthenticator() if authenticator is None else authenticator
    )
    app.config['sweeper'] = sweeper
    app.config['MAX_CONTENT_LENGTH'] = max_content_length

    app.register_blueprint(api_blueprint, url_prefix='/api')
    app.register_blueprint(public_blueprint, url_prefix='')

    return app


def _json_response(data: Any, status: int = 200) -> Response:
    return Response(
        json.dumps(data),
        status,
        content_type='application/json',
    )


def _service() -> PeerTrackService:
    return quart.current_app.config['service']


async def _json_body() -> dict[str, Any]:
    body = await request.get_json(force=True, silent=True)
    if not isinstance(body, dict):
        raise InvalidRequestError('Request body must be a JSON object.')
    return body


@public_blueprint.before_app_serving
async def _startup() -> None:
    sweeper = quart.current_app.config['sweeper']
    if sweeper is not None:
        quart.current_app.config['sweeper_task'] = sweeper.start()
        logger.info(
            f'Started membership sweeper (interval: {sweeper.interval}s)',
        )


@public_blueprint.after_app_serving
async def _shutdown() -> None:
    task = quart.current_app.config.get('sweeper_task')
    if task is not None:
        await cancel_and_wait(task)
    await _service().close()


@public_blueprint.before_app_request
async def _start_timer() -> None:
    quart.g.start_time = time.perf_counter()


@public_blueprint.after_app_request
async def _log_request(response: Response) -> Response:
    start = getattr(quart.g, 'start_time', None)
    elapsed = 0.0 if start is None else (time.perf_counter() - start) * 1000
    level = logging.INFO if response.status_code < 400 else logging.WARNING
    logger.log(
        level,
        f'{request.method} {request.path} - {response.status_code} '
        f'({elapsed:.0f}ms)',
    )
    return response


@public_blueprint.app_errorhandler(PeerTrackError)
async def _handle_peertrack_error(error: PeerTrackError) -> Response:
    status = 500
    for cls in type(error).__mro__:
        if cls in _STATUS_CODES:
            status = _STATUS_CODES[cls]
            break
    if status >= 500:
        logger.error(f'{type(error).__name__}: {error}')
    return _json_response({'error': str(error)}, status)


@public_blueprint.app_errorhandler(HTTPException)
async def _handle_http_error(error: HTTPException) -> Response:
    status = 500 if error.code is None else error.code
    return _json_response({'error': error.description}, status)


@public_blueprint.app_errorhandler(Exception)
async def _handle_unexpected_error(error: Exception) -> Response:
    logger.exception(f'Unhandled exception: {error!r}')
    return _json_response({'error': 'Internal server error'}, 500)


@api_blueprint.before_request
async def _authenticate() -> None:
    authenticator = quart.current_app.config['authenticator']
    quart.g.identity = authenticator.authenticate_user(request.headers)


@api_blueprint.route('/announce', methods=['POST'])
async def announce_handler() -> Response:
    """Route handler for `POST /api/announce`.

    Responses:

    * `Status Code 200`: JSON `{success, peerId, ttl}`.
    * `Status Code 400`: If a required field is missing or malformed.
    * `Status Code 503`: If the peer state store is unavailable.
    """
    body = await _json_body()
    result = await _service().announce(
        client_id=body.get('clientId'),
        manifest_id=body.get('manifestId'),
        chunk_bitfield=body.get('chunkBitfield'),
        up_cap=body.get('upCap'),
        region=body.get('region'),
        rtt_hint=body.get('rttHint'),
        version=body.get('version'),
    )
    return _json_response(result)


@api_blueprint.route('/peers', methods=['POST'])
async def peers_handler() -> Response:
    """Route handler for `POST /api/peers`.

    Responses:

    * `Status Code 200`: JSON `{peers, count}`.
    * `Status Code 400`: If a required field is missing or malformed.
    * `Status Code 503`: If the peer state store is unavailable.
    """
    body = await _json_body()
    result = await _service().get_peers(
        manifest_id=body.get('manifestId'),
        needed_chunks=body.get('neededChunks'),
        region=body.get('region'),
        exclude_peers=body.get('excludePeers'),
    )
    return _json_response(result)


@api_blueprint.route('/complete', methods=['POST'])
async def complete_handler() -> Response:
    """Route handler for `POST /api/complete`.

    Responses:

    * `Status Code 200`: JSON `{success}`.
    * `Status Code 400`: If a required field is missing.
    * `Status Code 404`: If the peer has no live record.
    """
    body = await _json_body()
    result = await _service().complete(
        client_id=body.get('clientId'),
        manifest_id=body.get('manifestId'),
    )
    return _json_response(result)


@api_blueprint.route('/turn', methods=['GET'])
async def turn_handler() -> Response:
    """Route handler for `GET /api/turn`.

    Responses:

    * `Status Code 200`: JSON `{username, password, ttl, uris}`.
    * `Status Code 503`: If no TURN secret is configured.
    """
    return _json_response(_service().turn_credentials(quart.g.identity))


@api_blueprint.route('/signal', methods=['POST'])
async def signal_handler() -> Response:
    """Route handler for `POST /api/signal`.

    The sender is the authenticated identity of the caller.

    Responses:

    * `Status Code 200`: JSON `{success, message}`.
    * `Status Code 400`: If the type or recipient is missing or the type
      is unknown.
    """
    body = await _json_body()
    result = await _service().signal(
        sender=quart.g.identity,
        signal_type=body.get('type'),
        to=body.get('to'),
        payload=body.get('data'),
    )
    return _json_response(result)


@api_blueprint.route('/signals/<client_id>', methods=['GET'])
async def signals_handler(client_id: str) -> Response:
    """Route handler for `GET /api/signals/<client_id>`.

    Responses:

    * `Status Code 200`: JSON `{signals}`. Returned signals are removed
      from the mailbox.
    """
    return _json_response(await _service().poll_signals(client_id))


@public_blueprint.route('/health', methods=['GET'])
async def health_handler() -> Response:
    """Route handler for `GET /health`.

    Responses:

    * `Status Code 200`: JSON `{status, storeStatus, timestamp}`.
    * `Status Code 503`: If the peer state store is unreachable.
    """
    result = await _service().health()
    return _json_response(result, 200 if result['status'] == 'ok' else 503)


@public_blueprint.route('/metrics', methods=['GET'])
async def metrics_handler() -> Response:
    """Route handler for `GET /metrics`.

    Responses:

    * `Status Code 200`: Prometheus text format gauges.
    """
    return Response(
        await _service().metrics(),
        200,
        content_type='text/plain; version=0.0.4',
    )
