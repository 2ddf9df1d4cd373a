from __future__ import annotations
from flask import Flask, request, jsonify

import logging
import os
import time
from collections import deque, defaultdict

from contotermico.config.env import configure_logging, get_gse_config_path, get_server_config
from contotermico.incentive.config import DEFAULT_GSE_CONFIG, ConfigurationError, GseConfig
from contotermico.incentive.engine import calculate_incentive
from contotermico.incentive.models import SimulationInput
from contotermico.validation.rules import validate_payload

logger = logging.getLogger(__name__)

app = Flask(__name__)

# Configuration helpers (overridable via app.config in tests)

def _get_api_key() -> str | None:
    if 'API_KEY' in app.config:
        return app.config.get('API_KEY')
    return os.environ.get('API_KEY')


def _get_rate_limit() -> tuple[int, float]:
    n = app.config.get('RATE_LIMIT_N')
    w = app.config.get('RATE_LIMIT_WINDOW_SEC')
    if n is None:
        n = int(os.environ.get('RATE_LIMIT_N', '20'))
    if w is None:
        w = float(os.environ.get('RATE_LIMIT_WINDOW_SEC', '1.0'))
    return int(n), float(w)


def _get_gse_config() -> GseConfig:
    cfg = app.config.get('GSE_CONFIG')
    if cfg is None:
        path = get_gse_config_path()
        cfg = GseConfig.from_json_path(path) if path else DEFAULT_GSE_CONFIG
        app.config['GSE_CONFIG'] = cfg
    return cfg

_recent: dict[str, deque[float]] = defaultdict(lambda: deque(maxlen=100))


def _client_ip() -> str:
    xff = request.headers.get('X-Forwarded-For')
    if xff:
        return xff.split(',')[0].strip()
    return request.remote_addr or 'anon'


def _check_api_key():
    api_key = _get_api_key()
    if api_key:
        provided = request.headers.get('X-API-Key')
        if provided != api_key:
            logger.warning("rejected %s %s: bad or missing API key", request.method, request.path)
            return jsonify({'error': 'unauthorized'}), 401
    return None


def _check_rate_limit(ip: str):
    n, window = _get_rate_limit()
    if n <= 0:
        return None
    now = time.time()
    dq = _recent[ip]
    while dq and now - dq[0] > window:
        dq.popleft()
    if len(dq) >= n:
        retry = max(0.0, window - (now - dq[0]))
        logger.warning("rate limited %s", ip)
        resp = jsonify({'error': 'rate_limited'})
        resp.status_code = 429
        resp.headers['Retry-After'] = f"{retry:.2f}"
        return resp
    dq.append(now)
    return None

@app.before_request
def _auth_and_rate_limit():
    if request.path.startswith('/simulations') or request.path == '/config':
        unauthorized = _check_api_key()
        if unauthorized is not None:
            return unauthorized
        # Rate limit only the calculation itself
        if request.method == 'POST' and request.path == '/simulations':
            rl = _check_rate_limit(_client_ip())
            if rl is not None:
                return rl
    return None


@app.get('/health')
def health():
    return jsonify({'status': 'ok'})


@app.post('/simulations/validate')
def post_validate():
    payload = request.get_json(force=True, silent=True) or {}
    issues = validate_payload(payload)
    return jsonify({'valid': not issues, 'issues': [i.to_dict() for i in issues]})


@app.post('/simulations')
def post_simulation():
    payload = request.get_json(force=True, silent=True) or {}
    issues = validate_payload(payload)
    if issues:
        logger.warning("invalid simulation input: %s", ", ".join(i.field for i in issues))
        return jsonify({'error': 'invalid_input', 'issues': [i.to_dict() for i in issues]}), 400
    inp = SimulationInput.from_dict(payload)
    try:
        result = calculate_incentive(inp, _get_gse_config())
    except ConfigurationError as e:
        logger.warning("configuration error: %s", e)
        return jsonify({'error': 'configuration_error', 'detail': str(e)}), 422
    return jsonify({'input': inp.to_dict(), 'result': result.to_dict()})


@app.get('/config')
def get_config():
    try:
        cfg = _get_gse_config()
    except ConfigurationError as e:
        return jsonify({'error': 'configuration_error', 'detail': str(e)}), 422
    return jsonify(cfg.to_dict())


if __name__ == '__main__':
    configure_logging()
    sc = get_server_config()
    app.run(host=sc.host, port=sc.port)
