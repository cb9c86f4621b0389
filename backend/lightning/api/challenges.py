from flask import Blueprint, jsonify, request, current_app
from lightning.services.challenges import orchestrator, store
from lightning.services.challenges.errors import ChallengeError, ValidationError


challenges = Blueprint('challenges', __name__)


@challenges.errorhandler(ChallengeError)
def handle_challenge_error(exc):
    current_app.logger.info(f"[api-error] path={request.path} code={exc.code} message={exc.message}")
    return jsonify(exc.to_dict()), exc.status_code


def _json():
    data = request.get_json(silent=True)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValidationError('Request body must be a JSON object')
    return data


def _require(data, *names):
    missing = [n for n in names if data.get(n) in (None, '')]
    if missing:
        raise ValidationError(f"Missing required field(s): {', '.join(missing)}")


def _as_int(value, name):
    if isinstance(value, str) and value.strip().lstrip('-').isdigit():
        return int(value)
    if isinstance(value, float) and value.is_integer():
        return int(value)
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValidationError(f'{name} must be an integer')
    return value


def _as_number(value, name):
    if isinstance(value, str):
        try:
            return float(value)
        except ValueError:
            raise ValidationError(f'{name} must be a number')
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValidationError(f'{name} must be a number')
    return value


def _user_arg():
    user_id = request.args.get('user_id')
    if not user_id:
        raise ValidationError('user_id is required')
    return user_id


@challenges.route('', methods=['POST'])
def create_challenge():
    data = _json()
    _require(data, 'challenger_id', 'opponent_id', 'cohort_id', 'subject_id', 'stake')
    challenge = orchestrator.create_challenge(
        data['challenger_id'],
        data['opponent_id'],
        data['cohort_id'],
        data['subject_id'],
        _as_int(data['stake'], 'stake'),
    )
    return jsonify({'challenge_id': challenge.id, 'challenge': challenge.to_dict()}), 201


@challenges.route('', methods=['GET'])
def list_challenges():
    user_id = _user_arg()
    status = request.args.get('status') or None
    return jsonify(orchestrator.list_challenges(user_id, status))


@challenges.route('/stakes', methods=['GET'])
def get_stake_options():
    return jsonify(orchestrator.stake_options(_user_arg()))


@challenges.route('/<string:challenge_id>', methods=['GET'])
def get_challenge(challenge_id):
    challenge = store.get_challenge(challenge_id)
    payload = challenge.to_dict()
    payload['attempts'] = [a.to_dict() for a in store.get_attempts(challenge_id)]
    return jsonify(payload)


@challenges.route('/<string:challenge_id>/revenge-options', methods=['GET'])
def get_revenge_options(challenge_id):
    return jsonify(orchestrator.revenge_options(challenge_id, _user_arg()))


@challenges.route('/<string:challenge_id>/revenge', methods=['POST'])
def create_revenge(challenge_id):
    data = _json()
    _require(data, 'user_id')
    stake = data.get('stake')
    challenge = orchestrator.create_revenge_or_rematch(
        challenge_id,
        data['user_id'],
        _as_int(stake, 'stake') if stake is not None else None,
    )
    return jsonify({'challenge_id': challenge.id, 'challenge': challenge.to_dict()}), 201


@challenges.route('/<string:challenge_id>/attempts', methods=['POST'])
def submit_attempt(challenge_id):
    data = _json()
    _require(data, 'user_id', 'score', 'questions_answered', 'seconds_used')
    result = orchestrator.submit_attempt(
        challenge_id,
        data['user_id'],
        _as_int(data['score'], 'score'),
        _as_int(data['questions_answered'], 'questions_answered'),
        _as_number(data['seconds_used'], 'seconds_used'),
    )
    return jsonify(result.to_dict()), 201


# ---- Lightning round play ----

def _round_payload(session, result=None, feedback=None):
    payload = session.to_dict()
    if feedback is not None:
        payload['feedback'] = feedback
    payload['settlement'] = result.to_dict() if result is not None else None
    return payload


@challenges.route('/<string:challenge_id>/rounds', methods=['POST'])
def start_round(challenge_id):
    data = _json()
    _require(data, 'user_id')
    session = orchestrator.start_round(challenge_id, data['user_id'])
    return jsonify(_round_payload(session)), 201


@challenges.route('/rounds/<string:session_id>', methods=['GET'])
def get_round(session_id):
    session, result = orchestrator.get_round(session_id, _user_arg())
    return jsonify(_round_payload(session, result))


@challenges.route('/rounds/<string:session_id>/answer', methods=['POST'])
def answer_round(session_id):
    data = _json()
    _require(data, 'user_id', 'answer')
    session, feedback, result = orchestrator.answer_round(session_id, data['user_id'], str(data['answer']))
    return jsonify(_round_payload(session, result, feedback))


@challenges.route('/rounds/<string:session_id>/cancel', methods=['POST'])
def cancel_round(session_id):
    data = _json()
    _require(data, 'user_id')
    session = orchestrator.cancel_round(session_id, data['user_id'])
    return jsonify(_round_payload(session))
