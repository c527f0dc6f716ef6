"""
Authentication routes: admin login and logout for the backup API.
"""

from flask import Blueprint, jsonify, request
from flask_login import login_user, logout_user, login_required, current_user

from sitevault.auth import authenticate_admin, UserModel


bp = Blueprint('auth', __name__, url_prefix='/api/auth')


@bp.route('/login', methods=['POST'])
def login():
    """
    Sign in an admin user.

    Body (JSON or form):
        - email
        - password

    Returns:
        JSON with the signed-in user, or 400/401 on failure
    """
    data = request.get_json(silent=True) or request.form
    email = (data.get('email') or '').strip()
    password = data.get('password') or ''

    if not email or not password:
        return jsonify({'error': 'Email and password are required'}), 400

    user = authenticate_admin(email, password)
    if user is None:
        return jsonify({'error': 'Invalid email or password'}), 401

    login_user(UserModel(user), remember=True)
    return jsonify({'id': user.id, 'email': user.email, 'name': user.name})


@bp.route('/logout', methods=['POST'])
@login_required
def logout():
    """Sign out the current user."""
    logout_user()
    return jsonify({'message': 'Logged out'})


@bp.route('/me', methods=['GET'])
@login_required
def me():
    """Current signed-in admin."""
    return jsonify({'id': current_user.id, 'email': current_user.email})
