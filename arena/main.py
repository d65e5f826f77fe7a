from flask import Blueprint, request, jsonify
from flask_login import login_user, logout_user, login_required, current_user
from arena import db
from arena.models import User

main = Blueprint('main', __name__)


def _clean_name(value, fallback='Guest'):
    name = (value or '').strip()[:64]
    return name or fallback


@main.route('/guest', methods=['POST'])
def guest():
    data = request.get_json(silent=True) or {}
    if current_user.is_authenticated:
        # Renaming an existing guest keeps its identity (and its seats)
        if data.get('name') and current_user.is_guest:
            current_user.name = _clean_name(data.get('name'))
            db.session.commit()
        return jsonify(current_user.to_dict())
    user = User(name=_clean_name(data.get('name')), is_guest=True)
    db.session.add(user)
    db.session.commit()
    login_user(user, remember=True)
    return jsonify(user.to_dict()), 201


@main.route('/register', methods=['POST'])
def register():
    data = request.get_json(silent=True) or {}
    if not data.get('username') or not data.get('password'):
        return jsonify({'error': 'Missing username or password'}), 400

    if User.query.filter_by(username=data['username']).first():
        return jsonify({'error': 'Username already exists'}), 400

    user = User(username=data['username'], name=_clean_name(data.get('name'), data['username']), is_guest=False)
    user.set_password(data['password'])
    db.session.add(user)
    db.session.commit()
    login_user(user, remember=True)
    return jsonify(user.to_dict()), 201


@main.route('/login', methods=['POST'])
def login():
    data = request.get_json(silent=True) or {}
    user = User.query.filter_by(username=data.get('username')).first()
    if user and user.check_password(data.get('password')):
        login_user(user, remember=True)
        return jsonify(user.to_dict())
    return jsonify({'error': 'Invalid username or password'}), 401


@main.route('/me', methods=['GET'])
@login_required
def me():
    return jsonify(current_user.to_dict())


@main.route('/logout', methods=['POST'])
@login_required
def logout():
    logout_user()
    return jsonify({'message': 'Logged out successfully.'})
