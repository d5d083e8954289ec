from flask import Blueprint, jsonify, request, current_app
from blitz.services.trivia import store
from blitz.services.trivia.identity import current_identity
from blitz.services.trivia.round import RoundError


trivia = Blueprint('trivia', __name__)


def _registry():
    return current_app.extensions['blitz_rounds']


def _parse_week(value):
    if isinstance(value, bool):
        return None
    if isinstance(value, str):
        value = value.strip()
        if not (value.isascii() and value.isdigit()):
            return None
        value = int(value)
    if not isinstance(value, int):
        return None
    return value if value >= 1 else None


def _entry(round_id):
    entry = _registry().get(round_id)
    # Follow the requester so a player who signs in mid-round gets the score
    entry.identity.refresh(current_identity())
    return entry


@trivia.errorhandler(RoundError)
def handle_round_error(exc):
    return jsonify({'error': str(exc)}), exc.status_code


@trivia.route('/weeks', methods=['GET'])
def list_weeks():
    return jsonify({'weeks': store.available_weeks()})


@trivia.route('/rounds', methods=['POST'])
def create_round():
    data = request.get_json(silent=True) or {}
    week = None
    if data.get('week') is not None:
        week = _parse_week(data.get('week'))
        if week is None:
            return jsonify({'error': 'week must be a positive integer'}), 400

    registry = _registry()
    entry = registry.create(owner_id=current_identity())
    if week is not None:
        try:
            entry.controller.select_week(week)
        except RoundError:
            registry.discard(entry.round_id)
            raise
    return jsonify(entry.to_dict()), 201


@trivia.route('/rounds/<string:round_id>', methods=['GET'])
def get_round(round_id):
    return jsonify(_entry(round_id).to_dict())


@trivia.route('/rounds/<string:round_id>', methods=['DELETE'])
def delete_round(round_id):
    _registry().get(round_id)
    _registry().discard(round_id)
    return jsonify({'ok': True})


@trivia.route('/rounds/<string:round_id>/week', methods=['POST'])
def select_week(round_id):
    data = request.get_json(silent=True) or {}
    week = _parse_week(data.get('week'))
    if week is None:
        return jsonify({'error': 'week must be a positive integer'}), 400
    entry = _entry(round_id)
    entry.controller.select_week(week)
    return jsonify(entry.to_dict())


@trivia.route('/rounds/<string:round_id>/draft', methods=['POST'])
def save_draft(round_id):
    data = request.get_json(silent=True) or {}
    answer = data.get('answer')
    if answer is not None and not isinstance(answer, str):
        return jsonify({'error': 'answer must be a string'}), 400
    entry = _entry(round_id)
    entry.controller.set_answer(answer)
    return jsonify(entry.to_dict())


@trivia.route('/rounds/<string:round_id>/answer', methods=['POST'])
def submit_answer(round_id):
    data = request.get_json(silent=True) or {}
    answer = data.get('answer')
    if answer is not None and not isinstance(answer, str):
        return jsonify({'error': 'answer must be a string'}), 400
    entry = _entry(round_id)
    result = entry.controller.submit_answer(answer)
    payload = entry.to_dict()
    payload['result'] = result
    return jsonify(payload)


@trivia.route('/rounds/<string:round_id>/restart', methods=['POST'])
def restart_round(round_id):
    entry = _entry(round_id)
    entry.controller.restart()
    return jsonify(entry.to_dict())


@trivia.route('/rounds/<string:round_id>/back', methods=['POST'])
def back_to_weeks(round_id):
    entry = _entry(round_id)
    entry.controller.back_to_weeks()
    return jsonify(entry.to_dict())


@trivia.route('/leaderboard', methods=['GET'])
def get_leaderboard():
    raw_week = request.args.get('week')
    if raw_week is not None:
        week = _parse_week(raw_week)
        if week is None:
            return jsonify({'error': 'week must be a positive integer'}), 400
    else:
        # Default to the most recent week
        weeks = store.available_weeks()
        week = weeks[0] if weeks else None
    if week is None:
        return jsonify({'week': None, 'entries': []})
    limit = int(current_app.config.get('LEADERBOARD_LIMIT', 10))
    return jsonify({'week': week, 'entries': store.leaderboard(week, limit=limit)})
