import logging
import os
from datetime import datetime

from apscheduler.schedulers.background import BackgroundScheduler
from flask import Flask, Response, jsonify, request
from flask_cors import CORS

from candy_machine import CANDY_MACHINE_PROGRAM_ID
from config import TWO_PHASE, Config, load_authority
from cosigner import CoSigner
from eligibility import check_eligibility, to_response
from errors import MintError, ValidationError
from identity_store import IdentityStore, parse_identity
from mint_confirmation import MintConfirmation
from models import MintRecord, db
from pending_store import PendingSignerStore
from solana_rpc import SolanaRpc
from transaction_builder import MintTransactionBuilder

ENDPOINTS = ['/mint/check', '/mint', '/mint/sign', '/mint/confirm', '/mint/records/<wallet>', '/rpc', '/health']


def create_app(config=None, rpc=None, pending_store=None, authority=None):
    if config is None:
        config = Config()
    logging.basicConfig(
        level=getattr(logging, str(config.LOG_LEVEL).upper(), logging.INFO),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    )

    app = Flask(__name__)
    app.config.update(config.to_flask())
    app.config['SQLALCHEMY_TRACK_MODIFICATIONS'] = False
    CORS(app, origins=config.CORS_ORIGINS)

    if app.config['SQLALCHEMY_DATABASE_URI'].startswith('sqlite:///'):
        db_path = app.config['SQLALCHEMY_DATABASE_URI'][len('sqlite:///'):]
        os.makedirs(os.path.dirname(os.path.abspath(db_path)), exist_ok=True)
    db.init_app(app)
    with app.app_context():
        db.create_all()

    if authority is None:
        authority = load_authority(config)
    if rpc is None:
        rpc = SolanaRpc(config.RPC_ENDPOINT, timeout=config.RPC_TIMEOUT)
    # An injected store may be empty, and an empty store is falsy.
    if pending_store is None:
        pending_store = PendingSignerStore(
            ttl=config.PENDING_TTL_SECONDS, maxsize=config.PENDING_MAX_ENTRIES
        )
    identity_store = IdentityStore(config.WHITELIST_PATH, config.MINTED_PATH)
    builder = MintTransactionBuilder(
        identity_store,
        rpc,
        authority,
        config.CANDY_MACHINE_ID,
        pending_store=pending_store,
        signing_mode=config.SIGNING_MODE,
        compute_unit_limit=config.COMPUTE_UNIT_LIMIT,
    )
    cosigner = CoSigner(pending_store, strict_message_match=config.STRICT_MESSAGE_MATCH)
    confirmation = MintConfirmation(identity_store, rpc)

    app.extensions['mint'] = {
        'identity_store': identity_store,
        'pending_store': pending_store,
        'rpc': rpc,
        'builder': builder,
        'cosigner': cosigner,
        'confirmation': confirmation,
    }

    if config.START_SWEEPER:
        scheduler = BackgroundScheduler(daemon=True)
        scheduler.add_job(pending_store.sweep, 'interval', seconds=config.SWEEP_INTERVAL_SECONDS,
                          id='sweep_pending_transactions')
        scheduler.start()
        app.extensions['mint']['scheduler'] = scheduler

    def json_body():
        if not request.is_json:
            raise ValidationError('Missing JSON data')
        data = request.get_json(silent=True)
        if not isinstance(data, dict):
            raise ValidationError('Missing JSON data')
        return data

    def update_record(record_id, **fields):
        if record_id is None:
            return
        record = db.session.get(MintRecord, record_id)
        if record is None:
            return
        for key, value in fields.items():
            setattr(record, key, value)
        db.session.commit()

    @app.errorhandler(MintError)
    def handle_mint_error(e):
        if e.status_code >= 500:
            app.logger.error(f'{request.path} failed: {e.message}')
        else:
            app.logger.info(f'{request.path} rejected: {e.message}')
        return jsonify(e.to_dict()), e.status_code

    @app.route('/mint/check', methods=['POST'])
    def mint_check():
        data = json_body()
        wallet = str(parse_identity(data.get('wallet')))
        try:
            eligibility = check_eligibility(identity_store, wallet)
        except Exception as e:
            app.logger.error(f'Error checking eligibility: {str(e)}')
            return jsonify({'error': str(e)}), 500
        return jsonify(to_response(eligibility))

    @app.route('/mint', methods=['POST'])
    def mint():
        data = json_body()
        app.logger.info(f"Building mint transaction for {data.get('wallet')}")
        try:
            built = builder.build(data.get('wallet'))
        except MintError:
            raise
        except Exception as e:
            app.logger.error(f'Error building mint transaction: {str(e)}')
            return jsonify({'error': str(e)}), 500

        record = MintRecord(
            wallet=built.wallet,
            mint_address=built.mint_address,
            signing_mode=built.signing_mode,
            status='built',
        )
        db.session.add(record)
        db.session.commit()
        if built.pending is not None:
            built.pending.record_id = record.id

        return jsonify(built.to_dict())

    @app.route('/mint/sign', methods=['POST'])
    def mint_sign():
        if config.SIGNING_MODE != TWO_PHASE:
            return jsonify({'error': 'Co-signing is not used in one-phase mode'}), 404
        data = json_body()
        try:
            transaction, entry = cosigner.cosign(data.get('wallet'), data.get('transaction'))
        except MintError:
            raise
        except Exception as e:
            app.logger.error(f'Error co-signing transaction: {str(e)}')
            return jsonify({'error': str(e)}), 500

        update_record(entry.record_id, status='cosigned')
        return jsonify({'transaction': transaction, 'mint': entry.mint_address})

    @app.route('/mint/confirm', methods=['POST'])
    def mint_confirm():
        data = json_body()
        try:
            result = confirmation.confirm(data.get('wallet'), data.get('signature'))
        except MintError:
            raise
        except Exception as e:
            app.logger.error(f'Error confirming mint: {str(e)}')
            return jsonify({'error': str(e)}), 500

        wallet = str(parse_identity(data.get('wallet')))
        record = (
            MintRecord.query.filter_by(wallet=wallet)
            .filter(MintRecord.status.in_(('built', 'cosigned', 'unconfirmed')))
            .order_by(MintRecord.created_at.desc(), MintRecord.id.desc())
            .first()
        )
        if record is not None:
            update_record(
                record.id,
                signature=result['signature'],
                status='confirmed' if result['success'] else 'unconfirmed',
            )
        return jsonify(result)

    @app.route('/mint/records/<wallet>', methods=['GET'])
    def mint_records(wallet):
        wallet = str(parse_identity(wallet))
        records = (
            MintRecord.query.filter_by(wallet=wallet)
            .order_by(MintRecord.created_at.desc(), MintRecord.id.desc())
            .all()
        )
        return jsonify([record.to_dict() for record in records])

    @app.route('/rpc', methods=['POST'])
    def rpc_relay():
        status, body = rpc.relay(request.get_data())
        return Response(body, status=status, mimetype='application/json')

    @app.route('/health')
    def health():
        return jsonify({'status': 'healthy', 'timestamp': datetime.utcnow().isoformat() + 'Z'})

    @app.route('/')
    def index():
        return jsonify({
            'name': 'FUNDOSHI Mint Backend',
            'candyMachine': str(builder.candy_machine_id),
            'programId': str(CANDY_MACHINE_PROGRAM_ID),
            'authority': str(authority.pubkey()),
            'signingMode': config.SIGNING_MODE,
            'endpoints': ENDPOINTS,
        })

    app.logger.info(
        f'Mint backend ready for candy machine {config.CANDY_MACHINE_ID} '
        f'({config.SIGNING_MODE}, authority {authority.pubkey()})'
    )
    return app


if __name__ == '__main__':
    config = Config()
    app = create_app(config)
    app.run(host='0.0.0.0', port=config.PORT, debug=config.DEBUG)
