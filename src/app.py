"""
Flask web application for the knockout tournament manager.
"""
import os
import re
import uuid
import yaml
from datetime import datetime, timedelta
from functools import wraps
from filelock import FileLock
from flask import Flask, request, jsonify, session, g
from knockout.access import AuthContext, ADMIN_ROLE, USER_ROLE, redact_bracket
from knockout.elimination import build_bracket, validate_entrant_count, get_round_name
from knockout.errors import BracketError, Conflict
from knockout.models import BYE, TBD
from knockout.propagation import report_result
from knockout.storage import TournamentStore

app = Flask(__name__)


def _get_or_create_secret_key() -> bytes:
    """Get SECRET_KEY from env, or generate and persist to file."""
    env_key = os.environ.get('SECRET_KEY')
    if env_key:
        return env_key.encode() if isinstance(env_key, str) else env_key
    key_file = os.path.join(DATA_DIR, '.secret_key')
    if os.path.exists(key_file):
        with open(key_file, 'rb') as f:
            return f.read()
    key = os.urandom(24)
    os.makedirs(os.path.dirname(key_file), exist_ok=True)
    with open(key_file, 'wb') as f:
        f.write(key)
    return key


def _parse_admin_users(value: str) -> set:
    return {name.strip().lower() for name in (value or '').split(',') if name.strip()}


BASE_DIR = os.path.dirname(os.path.dirname(__file__))
DATA_DIR = os.environ.get('BRACKET_DATA_DIR', os.path.join(BASE_DIR, 'data'))
ADMIN_USERS = _parse_admin_users(os.environ.get('ADMIN_USERS', ''))

app.secret_key = _get_or_create_secret_key()
app.config['PERMANENT_SESSION_LIFETIME'] = timedelta(days=30)

USERS_FILE = os.path.join(DATA_DIR, 'users.yaml')
TEAMS_FILE = os.path.join(DATA_DIR, 'teams.yaml')
CHAMPIONS_FILE = os.path.join(DATA_DIR, 'champions.yaml')

# Endpoints reachable without a session
PUBLIC_ENDPOINTS = {'static', 'api_register', 'api_login', 'api_logout',
                    'api_list_tournaments', 'api_get_tournament', 'api_champions', None}


def _data_lock() -> FileLock:
    """Lock guarding users.yaml and teams.yaml read-modify-write cycles."""
    os.makedirs(DATA_DIR, exist_ok=True)
    return FileLock(os.path.join(DATA_DIR, '.lock'), timeout=10)


def _get_store() -> TournamentStore:
    return TournamentStore(DATA_DIR)


def _error(message: str, status: int = 400):
    return jsonify({'error': message}), status


def _bracket_error(exc: BracketError):
    return _error(str(exc), exc.status_code)


# ---------------------------------------------------------------------------
# Users
# ---------------------------------------------------------------------------

def load_users() -> list:
    """Load user registry from YAML."""
    if not os.path.exists(USERS_FILE):
        return []
    try:
        with open(USERS_FILE, 'r', encoding='utf-8') as f:
            data = yaml.safe_load(f)
        return data.get('users', []) if data else []
    except Exception as e:
        app.logger.warning(f'Failed to parse {USERS_FILE}: {e}')
        return []


def save_users(users: list):
    """Save user registry to YAML."""
    os.makedirs(DATA_DIR, exist_ok=True)
    with open(USERS_FILE, 'w', encoding='utf-8') as f:
        yaml.dump({'users': users}, f, default_flow_style=False)


def find_user(username: str, users: list = None):
    users = load_users() if users is None else users
    username = (username or '').lower().strip()
    return next((u for u in users if u['username'] == username), None)


def create_user(username: str, password: str, discord: str = '') -> tuple:
    """Create a new user. Returns (success, message)."""
    from werkzeug.security import generate_password_hash
    username = username.lower().strip()
    if not re.match(r'^[a-z0-9][a-z0-9-]*$', username) or len(username) < 2:
        return False, 'Username must be at least 2 characters: letters, numbers, hyphens.'
    if len(password) < 4:
        return False, 'Password must be at least 4 characters.'
    with _data_lock():
        users = load_users()
        if any(u['username'] == username for u in users):
            return False, 'Username already taken.'
        users.append({
            'username': username,
            'password_hash': generate_password_hash(password),
            'discord': (discord or '').strip(),
            'team_id': None,
            'created': datetime.now().isoformat()
        })
        save_users(users)
    return True, 'Account created successfully.'


def authenticate_user(username: str, password: str) -> bool:
    """Check username/password. Returns True if valid."""
    from werkzeug.security import check_password_hash
    user = find_user(username)
    if user is None:
        return False
    return check_password_hash(user['password_hash'], password)


def get_user_role(username: str) -> str:
    """Role for a user, resolved from the ADMIN_USERS setting."""
    if username and username.lower() in ADMIN_USERS:
        return ADMIN_ROLE
    return USER_ROLE


# ---------------------------------------------------------------------------
# Teams
# ---------------------------------------------------------------------------

def load_teams() -> list:
    """Load teams from YAML file."""
    if not os.path.exists(TEAMS_FILE):
        return []
    with open(TEAMS_FILE, 'r', encoding='utf-8') as f:
        data = yaml.safe_load(f)
    if not data:
        return []
    return data.get('teams', [])


def save_teams(teams: list):
    """Save teams to YAML file."""
    os.makedirs(DATA_DIR, exist_ok=True)
    with open(TEAMS_FILE, 'w', encoding='utf-8') as f:
        yaml.dump({'teams': teams}, f, default_flow_style=False)


def get_user_team(username: str):
    """Return the team dict the user belongs to, or None."""
    user = find_user(username)
    if not user or not user.get('team_id'):
        return None
    return next((t for t in load_teams() if t['id'] == user['team_id']), None)


def create_team(username: str, name: str) -> tuple:
    """Create a team captained by username. Returns (team or None, message)."""
    trimmed = (name or '').strip()
    if not trimmed:
        return None, 'Please enter a team name.'
    if trimmed.upper() in (BYE, TBD):
        return None, f'"{trimmed}" is a reserved name.'
    with _data_lock():
        users = load_users()
        user = find_user(username, users)
        if user is None:
            return None, 'Unknown user.'
        if user.get('team_id'):
            return None, 'You are already a member of a team.'
        teams = load_teams()
        if any(t['name'].lower() == trimmed.lower() for t in teams):
            return None, 'A team with this name already exists.'
        team = {
            'id': uuid.uuid4().hex,
            'name': trimmed,
            'captain': user['username'],
            'members': [user['username']],
            'invites': [],
        }
        teams.append(team)
        user['team_id'] = team['id']
        save_teams(teams)
        save_users(users)
    return team, 'Team created successfully.'


def invite_to_team(team_id: str, inviter: str, invitee: str) -> tuple:
    """Add invitee to the team's invites. Returns (success, message)."""
    invitee = (invitee or '').lower().strip()
    if not invitee:
        return False, 'Please enter a username to invite.'
    with _data_lock():
        teams = load_teams()
        team = next((t for t in teams if t['id'] == team_id), None)
        if team is None:
            return False, 'Team not found.'
        if team['captain'] != inviter:
            return False, 'Only the team captain can invite players.'
        if invitee in team['members']:
            return False, 'This user is already a member of the team.'
        if invitee in team.get('invites', []):
            return False, 'This user has already been invited.'
        team.setdefault('invites', []).append(invitee)
        save_teams(teams)
    return True, 'Invitation added.'


def accept_invites_for_user(username: str) -> list:
    """Move the user from every pending invite into the team's members.

    A user without a team is assigned the first team they join. Returns the
    ids of teams joined.
    """
    joined = []
    with _data_lock():
        teams = load_teams()
        users = load_users()
        user = find_user(username, users)
        for team in teams:
            if username not in team.get('invites', []):
                continue
            team['invites'] = [i for i in team['invites'] if i != username]
            if username not in team['members']:
                team['members'].append(username)
                joined.append(team['id'])
                if user is not None and not user.get('team_id'):
                    user['team_id'] = team['id']
        if joined:
            save_teams(teams)
            save_users(users)
    return joined


# ---------------------------------------------------------------------------
# Tournaments
# ---------------------------------------------------------------------------

def _slugify(name: str) -> str:
    """Convert tournament name to a URL-safe id."""
    slug = name.lower().strip()
    slug = re.sub(r'[^a-z0-9\s-]', '', slug)
    slug = re.sub(r'[\s-]+', '-', slug)
    slug = slug.strip('-')
    return slug or 'tournament'


def _parse_max_teams(value):
    try:
        max_teams = int(value)
    except (TypeError, ValueError):
        return None
    return max_teams if max_teams >= 2 else None


def _parse_start_date(value):
    """Return an ISO date string, None for blank input. Raises ValueError if malformed."""
    if value is None or str(value).strip() == '':
        return None
    return datetime.strptime(str(value).strip(), '%Y-%m-%d').date().isoformat()


def load_static_champions() -> list:
    """Champions of tournaments held before this site existed."""
    if not os.path.exists(CHAMPIONS_FILE):
        return []
    with open(CHAMPIONS_FILE, 'r', encoding='utf-8') as f:
        data = yaml.safe_load(f)
    if not data:
        return []
    return data.get('champions', [])


def _current_viewer():
    username = getattr(g, 'user', None)
    if not username:
        return None
    team = get_user_team(username)
    return AuthContext(username, role=get_user_role(username), team_name=team['name'] if team else None)


def _tournament_summary(record: dict) -> dict:
    return {
        'id': record['id'],
        'name': record['name'],
        'status': record.get('status', 'open'),
        'team_count': len(record.get('teams') or []),
        'max_teams': record.get('max_teams'),
        'start_date': record.get('start_date'),
        'created': record.get('created'),
        'winner': record.get('winner'),
    }


def _tournament_detail(record: dict, viewer) -> dict:
    detail = _tournament_summary(record)
    detail['teams'] = record.get('teams') or []
    detail['version'] = record.get('version', 0)
    bracket = _get_store().load_bracket(record['id']) if record.get('bracket') else None
    if bracket is not None:
        detail['bracket'] = redact_bracket(bracket, viewer)
        detail['round_names'] = [get_round_name(len(r)) for r in bracket.rounds]
    else:
        detail['bracket'] = []
        detail['round_names'] = []
    return detail


def login_required(f):
    """Reject requests without a logged-in user."""
    @wraps(f)
    def decorated_function(*args, **kwargs):
        if not getattr(g, 'user', None):
            return _error('Login required.', 401)
        return f(*args, **kwargs)
    return decorated_function


def admin_required(f):
    """Reject requests from users without the admin role."""
    @wraps(f)
    def decorated_function(*args, **kwargs):
        if not getattr(g, 'user', None):
            return _error('Login required.', 401)
        if get_user_role(g.user) != ADMIN_ROLE:
            return _error('You must be an admin to do this.', 403)
        return f(*args, **kwargs)
    return decorated_function


@app.before_request
def load_current_user():
    """Set g.user from the session and require login outside public endpoints."""
    g.user = session.get('user')
    if request.endpoint in PUBLIC_ENDPOINTS:
        return
    if not g.user:
        return _error('Login required.', 401)


# ---------------------------------------------------------------------------
# Auth routes
# ---------------------------------------------------------------------------

@app.route('/api/register', methods=['POST'])
def api_register():
    """Create an account and log in."""
    data = request.get_json(silent=True) or {}
    username = data.get('username', '')
    password = data.get('password', '')
    confirm = data.get('confirm_password', password)
    if password != confirm:
        return _error('Passwords do not match.')
    ok, msg = create_user(username, password, data.get('discord', ''))
    if not ok:
        return _error(msg)
    username = username.lower().strip()
    session['user'] = username
    session.permanent = True
    accept_invites_for_user(username)
    return jsonify({'success': True, 'message': msg, 'user': username})


@app.route('/api/login', methods=['POST'])
def api_login():
    """Authenticate and start a session."""
    data = request.get_json(silent=True) or {}
    username = data.get('username', '')
    if not authenticate_user(username, data.get('password', '')):
        return _error('Invalid username or password.', 401)
    username = username.lower().strip()
    session['user'] = username
    session.permanent = True
    accept_invites_for_user(username)
    return jsonify({'success': True, 'user': username, 'role': get_user_role(username)})


@app.route('/api/logout', methods=['POST'])
def api_logout():
    session.clear()
    return jsonify({'success': True})


@app.route('/api/me')
def api_me():
    team = get_user_team(g.user)
    return jsonify({
        'user': g.user,
        'role': get_user_role(g.user),
        'team': team,
    })


# ---------------------------------------------------------------------------
# Team routes
# ---------------------------------------------------------------------------

@app.route('/api/teams', methods=['POST'])
@login_required
def api_create_team():
    data = request.get_json(silent=True) or {}
    team, msg = create_team(g.user, data.get('name'))
    if team is None:
        return _error(msg)
    return jsonify({'success': True, 'team': team}), 201


@app.route('/api/teams/mine')
@login_required
def api_my_team():
    return jsonify({'team': get_user_team(g.user)})


@app.route('/api/teams/<team_id>/invite', methods=['POST'])
@login_required
def api_invite_to_team(team_id):
    data = request.get_json(silent=True) or {}
    ok, msg = invite_to_team(team_id, g.user, data.get('username'))
    if not ok:
        return _error(msg)
    return jsonify({'success': True, 'message': msg})


# ---------------------------------------------------------------------------
# Tournament routes
# ---------------------------------------------------------------------------

@app.route('/api/tournaments')
def api_list_tournaments():
    """List all tournaments, newest first."""
    return jsonify({'tournaments': [_tournament_summary(t) for t in _get_store().list()]})


@app.route('/api/tournaments', methods=['POST'])
@admin_required
def api_create_tournament():
    """Create a new open tournament."""
    data = request.get_json(silent=True) or {}
    name = (data.get('name') or '').strip()
    if not name:
        return _error('Tournament name is required.')
    max_teams = _parse_max_teams(data.get('max_teams'))
    if max_teams is None:
        return _error('Please enter a valid maximum number of teams (at least 2).')
    try:
        start_date = _parse_start_date(data.get('start_date'))
    except ValueError:
        return _error('Start date must be YYYY-MM-DD.')

    record = {
        'id': _slugify(name),
        'name': name,
        'teams': [],
        'max_teams': max_teams,
        'created': datetime.now().isoformat(),
        'start_date': start_date,
        'status': 'open',
        'bracket': [],
        'winner': None,
    }
    try:
        record = _get_store().create(record)
    except ValueError:
        return _error(f'A tournament with a similar name already exists ("{record["id"]}").', 409)
    app.logger.info(f'Tournament created: {record["id"]} by {g.user}')
    return jsonify({'success': True, 'tournament': _tournament_summary(record)}), 201


@app.route('/api/tournaments/<tournament_id>')
def api_get_tournament(tournament_id):
    """Tournament detail with the bracket redacted for the caller."""
    try:
        record = _get_store().get(tournament_id)
    except BracketError as e:
        return _bracket_error(e)
    return jsonify(_tournament_detail(record, _current_viewer()))


@app.route('/api/tournaments/<tournament_id>', methods=['PATCH'])
@admin_required
def api_edit_tournament(tournament_id):
    """Edit name, and while open, max teams and start date."""
    data = request.get_json(silent=True) or {}
    store = _get_store()
    try:
        record = store.get(tournament_id)
    except BracketError as e:
        return _bracket_error(e)

    fields = {}
    if 'name' in data:
        name = (data.get('name') or '').strip()
        if name:
            fields['name'] = name

    if 'max_teams' in data or 'start_date' in data:
        if record.get('status', 'open') != 'open':
            return _error('Cannot edit maximum teams or start date after the tournament has started.')
        if 'max_teams' in data:
            current_teams = len(record.get('teams') or [])
            max_teams = _parse_max_teams(data.get('max_teams'))
            if max_teams is None or max_teams < current_teams:
                return _error(f'Invalid maximum. It must be a number at least equal to the number of '
                              f'registered teams ({current_teams}) and at least 2.')
            fields['max_teams'] = max_teams
        if 'start_date' in data:
            try:
                fields['start_date'] = _parse_start_date(data.get('start_date'))
            except ValueError:
                return _error('Start date must be YYYY-MM-DD.')

    try:
        record = store.update(tournament_id, expected_version=record.get('version', 0), **fields)
    except BracketError as e:
        return _bracket_error(e)
    return jsonify({'success': True, 'tournament': _tournament_summary(record)})


@app.route('/api/tournaments/<tournament_id>', methods=['DELETE'])
@admin_required
def api_delete_tournament(tournament_id):
    try:
        _get_store().delete(tournament_id)
    except BracketError as e:
        return _bracket_error(e)
    app.logger.info(f'Tournament deleted: {tournament_id} by {g.user}')
    return jsonify({'success': True})


@app.route('/api/tournaments/<tournament_id>/register', methods=['POST'])
@login_required
def api_register_team(tournament_id):
    """Register the caller's team for an open tournament."""
    team = get_user_team(g.user)
    if team is None:
        return _error('You need to create a team before you can register.')
    store = _get_store()
    try:
        record = store.get(tournament_id)
    except BracketError as e:
        return _bracket_error(e)
    if record.get('status', 'open') != 'open':
        return _error('This tournament has already started and cannot accept new teams.')
    teams = list(record.get('teams') or [])
    max_teams = record.get('max_teams')
    if max_teams and len(teams) >= max_teams:
        return _error('Tournament is full.')
    if any(t['id'] == team['id'] for t in teams):
        return _error('Your team is already registered for this tournament.')
    teams.append({'id': team['id'], 'name': team['name']})
    try:
        record = store.update(tournament_id, expected_version=record.get('version', 0), teams=teams)
    except BracketError as e:
        return _bracket_error(e)
    return jsonify({'success': True, 'tournament': _tournament_summary(record)})


@app.route('/api/tournaments/<tournament_id>/teams/<team_id>/remove', methods=['POST'])
@admin_required
def api_remove_team(tournament_id, team_id):
    store = _get_store()
    try:
        record = store.get(tournament_id)
    except BracketError as e:
        return _bracket_error(e)
    if record.get('status', 'open') != 'open':
        return _error('Cannot remove teams after the tournament has started.')
    teams = [t for t in (record.get('teams') or []) if t['id'] != team_id]
    try:
        record = store.update(tournament_id, expected_version=record.get('version', 0), teams=teams)
    except BracketError as e:
        return _bracket_error(e)
    return jsonify({'success': True, 'tournament': _tournament_summary(record)})


@app.route('/api/tournaments/<tournament_id>/start', methods=['POST'])
@admin_required
def api_start_tournament(tournament_id):
    """Generate the bracket and move the tournament from open to started."""
    data = request.get_json(silent=True) or {}
    seed = data.get('seed')
    if seed is not None and (isinstance(seed, bool) or not isinstance(seed, (int, str))):
        return _error('Seed must be a number or a string.')
    store = _get_store()
    try:
        record = store.get(tournament_id)
        if record.get('status', 'open') != 'open':
            return _error('Tournament has already started.')
        team_names = [t['name'] for t in (record.get('teams') or [])]
        validate_entrant_count(team_names)
        bracket = build_bracket(team_names, seed=seed)
        bracket.version = record.get('version', 0)
        store.save_bracket(tournament_id, bracket, status='started')
    except BracketError as e:
        if isinstance(e, Conflict):
            app.logger.warning(f'Start of {tournament_id} rejected: {e}')
        return _bracket_error(e)
    app.logger.info(f'Tournament started: {tournament_id} with {len(team_names)} teams')
    record = store.get(tournament_id)
    return jsonify({'success': True, 'tournament': _tournament_detail(record, _current_viewer())})


@app.route('/api/tournaments/<tournament_id>/report', methods=['POST'])
@admin_required
def api_report_result(tournament_id):
    """Record a match winner and advance them to the next round."""
    data = request.get_json(silent=True) or {}
    winner = data.get('winner')
    if not winner:
        return _error('Please select a winner.')
    store = _get_store()
    try:
        record = store.get(tournament_id)
        if record.get('status') != 'started':
            return _error('Tournament is not in progress.')
        bracket = store.load_bracket(tournament_id)
        if data.get('version') is not None and data['version'] != bracket.version:
            raise Conflict(tournament_id, data['version'], bracket.version)
        bracket, completed, champion = report_result(bracket, data.get('round'), data.get('match'), winner)
        fields = {'status': 'completed', 'winner': champion} if completed else {}
        store.save_bracket(tournament_id, bracket, **fields)
    except BracketError as e:
        app.logger.warning(f'Result report for {tournament_id} rejected: {e}')
        return _bracket_error(e)

    app.logger.info(f'Result reported for {tournament_id}: round {data.get("round")}, '
                    f'match {data.get("match")}, winner {winner}')
    return jsonify({
        'success': True,
        'completed': completed,
        'champion': champion,
        'version': bracket.version,
        'bracket': redact_bracket(bracket, _current_viewer()),
    })


@app.route('/api/champions')
def api_champions():
    """Past winners of completed tournaments plus pre-site champions."""
    past = [
        {'tournament': t['name'], 'champion': t['winner'], 'start_date': t.get('start_date')}
        for t in _get_store().list()
        if t.get('status') == 'completed' and t.get('winner')
    ]
    return jsonify({'past_winners': past, 'static_champions': load_static_champions()})


if __name__ == '__main__':
    app.run(debug=True, port=5000)
