"""
Pair Factory SDK Server - REST API over a factory

Endpoints:
  GET  /health                  - Liveness
  GET  /api/status              - Factory state (owner, fees, templates)
  POST /api/pairs/create        - Create a pair
  GET  /api/pairs/predict       - Address the next create would deploy to
  GET  /api/pairs/<address>     - Is-pair check (?variant=native|token)
  POST /api/deposit/nft         - Deposit NFT(s)
  POST /api/deposit/token       - Deposit fungible token
  POST /api/receive             - Send native funds to the factory
  POST /api/admin/fee_recipient - Change fee recipient (owner)
  POST /api/admin/fee_multiplier- Change fee multiplier (owner)
  POST /api/admin/call_target   - Allow/forbid a call target (owner)
  POST /api/admin/router        - Allow/revoke a router (owner)
  POST /api/admin/withdraw      - Withdraw protocol fees (owner)
  POST /api/admin/owner         - Transfer ownership (owner)
  GET  /api/access/<address>    - Call-target and router status
  GET  /api/events              - Factory event log (?name=NewPair)

The caller identity is the "sender" field of each POST body.
"""

import logging
import time
from typing import Tuple

from flask import Flask, jsonify, request
from flask_cors import CORS

from .exceptions import (
    ConfigurationError,
    DeploymentFailed,
    FactoryError,
    InitializationFailed,
    InvariantViolation,
    PermissionDenied,
)
from .factory import PairFactory
from .ledger import LedgerError
from .pair_types import PairVariant

log = logging.getLogger(__name__)

# Exception class -> HTTP status, most specific first
ERROR_STATUS = [
    (PermissionDenied, 403),
    (InvariantViolation, 409),
    (ConfigurationError, 400),
    (DeploymentFailed, 422),
    (InitializationFailed, 422),
    (FactoryError, 400),
    (LedgerError, 422),
    (ValueError, 400),
    (TypeError, 400),
    (KeyError, 400),
]


def error_response(e: Exception) -> Tuple:
    """Map an exception to a JSON error body and status code."""
    for cls, code in ERROR_STATUS:
        if isinstance(e, cls):
            if isinstance(e, KeyError):
                message = f"Missing required field: {e.args[0]}"
            else:
                message = str(e)
            return jsonify({'error': message, 'kind': type(e).__name__}), code
    log.error(f"Unexpected error: {e}")
    return jsonify({'error': str(e), 'kind': type(e).__name__}), 500


def _body() -> dict:
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        raise ValueError("No JSON object provided")
    return data


def _flag(value) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in ("1", "true", "yes")
    return bool(value)


def create_app(factory: PairFactory) -> Flask:
    """
    Build the Flask app serving one factory.

    Args:
        factory: Factory to expose

    Returns:
        Flask app (CORS enabled)
    """
    app = Flask(__name__)
    CORS(app)
    app.config['FACTORY'] = factory

    # =========================================================================
    # HEALTH / STATUS
    # =========================================================================

    @app.route('/health')
    def health():
        return jsonify({'ok': True, 'timestamp': int(time.time())})

    @app.route('/api/status')
    def api_status():
        status = factory.status()
        status['timestamp'] = int(time.time())
        return jsonify(status)

    # =========================================================================
    # PAIRS
    # =========================================================================

    @app.route('/api/pairs/create', methods=['POST'])
    def api_create_pair():
        """
        Create a pair.

        Request:
        {
            "sender": "0x...",            # Becomes pair owner, must have approved the factory
            "variant": "native",          # native | token
            "nft": "0x...",               # NFT collection
            "asset_recipient": "0x...",
            "duration": 2592000,          # Staking duration (seconds)
            "initial_nft_id": 7,
            "token": "0x..."              # TOKEN variant only
        }
        """
        try:
            data = _body()
            pair = factory.create_pair(
                sender=data['sender'],
                variant=data.get('variant', PairVariant.NATIVE.value),
                nft=data['nft'],
                asset_recipient=data['asset_recipient'],
                duration=int(data['duration']),
                initial_nft_id=int(data['initial_nft_id']),
                token=data.get('token')
            )
        except Exception as e:
            return error_response(e)

        variant = factory.pair_variant(pair)
        log.info(f"API created pair {pair}")
        return jsonify({'success': True, 'pair': pair, 'variant': variant.value})

    @app.route('/api/pairs/predict')
    def api_predict_pair():
        """Address of the next pair: ?variant=native&nft=0x...&duration=60[&token=0x...]"""
        try:
            variant = request.args.get('variant', PairVariant.NATIVE.value)
            pair = factory.predict_pair_address(
                variant,
                request.args['nft'],
                int(request.args['duration']),
                request.args.get('token') or None
            )
        except Exception as e:
            return error_response(e)
        return jsonify({'pair': pair, 'variant': variant.lower(), 'nonce': factory.pair_count})

    @app.route('/api/pairs/<address>')
    def api_is_pair(address):
        """Is-pair check for one variant, or all of them when variant is omitted."""
        variant = request.args.get('variant', '')
        if variant:
            return jsonify({
                'address': address,
                'variant': variant.lower(),
                'is_pair': factory.is_pair(address, variant)
            })

        found = factory.pair_variant(address)
        return jsonify({
            'address': address,
            'variant': found.value if found else None,
            'is_pair': found is not None
        })

    # =========================================================================
    # DEPOSITS
    # =========================================================================

    @app.route('/api/deposit/nft', methods=['POST'])
    def api_deposit_nft():
        """
        Request:
        {
            "sender": "0x...",
            "nft": "0x...",
            "recipient": "0x...",
            "nft_id": 7                   # or "nft_ids": [7, 8]
        }
        """
        try:
            data = _body()
            if 'nft_ids' in data:
                nft_ids = [int(i) for i in data['nft_ids']]
            else:
                nft_ids = [int(data['nft_id'])]
            emitted = factory.deposit_nfts(data['sender'], data['nft'], nft_ids, data['recipient'])
        except Exception as e:
            return error_response(e)
        return jsonify({'success': True, 'events': emitted})

    @app.route('/api/deposit/token', methods=['POST'])
    def api_deposit_token():
        """
        Request:
        {
            "sender": "0x...",
            "token": "0x...",
            "recipient": "0x...",
            "amount": 100
        }
        """
        try:
            data = _body()
            emitted = factory.deposit_token(data['sender'], data['token'], data['recipient'],
                                            int(data['amount']))
        except Exception as e:
            return error_response(e)
        return jsonify({'success': True, 'event_emitted': emitted})

    @app.route('/api/receive', methods=['POST'])
    def api_receive():
        try:
            data = _body()
            factory.receive(data['sender'], int(data['value']))
        except Exception as e:
            return error_response(e)
        return jsonify({'success': True, 'balance': factory.ledger.balance_of(factory.address)})

    # =========================================================================
    # ADMIN (owner only)
    # =========================================================================

    @app.route('/api/admin/fee_recipient', methods=['POST'])
    def api_fee_recipient():
        try:
            data = _body()
            factory.change_fee_recipient(data['sender'], data['recipient'])
        except Exception as e:
            return error_response(e)
        return jsonify({'success': True, 'fee_recipient': factory.fee_recipient})

    @app.route('/api/admin/fee_multiplier', methods=['POST'])
    def api_fee_multiplier():
        """Request: {"sender": "0x...", "multiplier": 50000000000000000}"""
        try:
            data = _body()
            factory.change_fee_multiplier(data['sender'], int(data['multiplier']))
        except Exception as e:
            return error_response(e)
        return jsonify({'success': True, 'fee_multiplier': factory.fee_multiplier})

    @app.route('/api/admin/call_target', methods=['POST'])
    def api_call_target():
        """Request: {"sender": "0x...", "target": "0x...", "allowed": true}"""
        try:
            data = _body()
            factory.set_call_allowed(data['sender'], data['target'], _flag(data['allowed']))
            allowed = factory.call_allowed(data['target'])
        except Exception as e:
            return error_response(e)
        return jsonify({'success': True, 'target': data['target'], 'allowed': allowed})

    @app.route('/api/admin/router', methods=['POST'])
    def api_router():
        """Request: {"sender": "0x...", "router": "0x...", "allowed": true}"""
        try:
            data = _body()
            factory.set_router_allowed(data['sender'], data['router'], _flag(data['allowed']))
            status = factory.router_status(data['router'])
        except Exception as e:
            return error_response(e)
        return jsonify({'success': True, 'router': data['router'], **status.to_dict()})

    @app.route('/api/admin/withdraw', methods=['POST'])
    def api_withdraw():
        """
        Request:
        {"sender": "0x..."}                                   # native fees
        {"sender": "0x...", "token": "0x...", "amount": 10}   # token fees
        """
        try:
            data = _body()
            if data.get('token'):
                amount = int(data['amount'])
                factory.withdraw_token_fees(data['sender'], data['token'], amount)
            else:
                amount = factory.withdraw_native_fees(data['sender'])
        except Exception as e:
            return error_response(e)
        return jsonify({'success': True, 'amount': amount, 'recipient': factory.fee_recipient})

    @app.route('/api/admin/owner', methods=['POST'])
    def api_transfer_owner():
        try:
            data = _body()
            factory.transfer_ownership(data['sender'], data['new_owner'])
        except Exception as e:
            return error_response(e)
        return jsonify({'success': True, 'owner': factory.owner})

    # =========================================================================
    # QUERIES
    # =========================================================================

    @app.route('/api/access/<address>')
    def api_access(address):
        try:
            call_allowed = factory.call_allowed(address)
            router = factory.router_status(address)
        except Exception as e:
            return error_response(e)
        return jsonify({
            'address': address,
            'call_allowed': call_allowed,
            'router': router.to_dict()
        })

    @app.route('/api/events')
    def api_events():
        name = request.args.get('name', '')
        events = factory.events(name)
        return jsonify({'events': events, 'count': len(events)})

    return app
