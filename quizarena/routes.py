from flask import Blueprint, request, jsonify, current_app
from flask_login import login_user, logout_user, login_required, current_user
from quizarena import db, bridge
from quizarena.models import User
from quizarena.services.profiles import ensure_profile
from quizarena.services.rank import rank_summary

main = Blueprint('main', __name__)

@main.route('/')
def index():
    return jsonify({'message': 'Welcome to the Quiz Arena server!'})

@main.route('/register', methods=['POST'])
def register():
    data = request.get_json(silent=True) or {}
    username = data.get('username')
    password = data.get('password')
    if not isinstance(username, str) or not isinstance(password, str):
        return jsonify({'error': 'Username and password must be text', 'code': 'validation'}), 400
    username = username.strip()
    if not username or not password:
        return jsonify({'error': 'Missing username or password', 'code': 'validation'}), 400

    if User.query.filter_by(username=username).first():
        return jsonify({'error': 'Username already exists', 'code': 'validation'}), 400

    user = User(username=username)
    user.set_password(password)
    db.session.add(user)
    db.session.commit()

    result = ensure_profile(bridge, user.id, username,
                            delay=current_app.config.get('PROFILE_CREATE_DELAY_SEC', 1.0))
    if not result.ok:
        current_app.logger.error(f"[register] user={user.id} profile creation failed: {result.error.message}")
        return jsonify(result.error.to_dict()), result.error.status_code

    login_user(user, remember=True)
    return jsonify({'message': 'User created successfully', 'user': user.to_dict(), 'profile': result.value}), 201

@main.route('/login', methods=['POST'])
def login():
    data = request.get_json(silent=True) or {}
    username, password = data.get('username'), data.get('password')
    user = User.query.filter_by(username=username).first() if isinstance(username, str) else None
    if user and isinstance(password, str) and user.check_password(password):
        login_user(user, remember=True)
        return jsonify({'message': 'Logged in successfully.', 'user': user.to_dict()})
    return jsonify({'error': 'Invalid username or password', 'code': 'unauthorized'}), 401

@main.route('/logout', methods=['GET', 'POST'])
@login_required
def logout():
    logout_user()
    return jsonify({'message': 'Logged out successfully.'})

@main.route('/api/profile')
@login_required
def profile():
    row = bridge.select_one('profiles', id=current_user.id)
    if not row:
        return jsonify({'error': 'Profile not found', 'code': 'not_found'}), 404
    return jsonify({'profile': row, **rank_summary(row['experience'])})
