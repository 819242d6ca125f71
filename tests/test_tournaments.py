"""
Integration tests for the tournament lifecycle routes:
create -> register teams -> start -> report results -> completed.
"""
import pytest
import sys
import os
import yaml

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', 'src'))

from app import create_user, create_team, _slugify
from conftest import login_as


def _create_tournament(client, name='Spring Cup', max_teams=8, **extra):
    login_as(client, 'admin')
    payload = {'name': name, 'max_teams': max_teams}
    payload.update(extra)
    return client.post('/api/tournaments', json=payload)


def _register_teams(client, tournament_id, names):
    """Create one captain per team name and register each team."""
    for i, name in enumerate(names):
        username = f'captain{i}'
        create_user(username, 'pass1234')
        create_team(username, name)
        login_as(client, username)
        response = client.post(f'/api/tournaments/{tournament_id}/register')
        assert response.status_code == 200, response.get_json()


def _start(client, tournament_id, seed=1):
    login_as(client, 'admin')
    return client.post(f'/api/tournaments/{tournament_id}/start', json={'seed': seed})


def _pick_winner(match):
    return match['team1'] if match['team1'] != 'BYE' else match['team2']


@pytest.fixture
def started_cup(client):
    """A started five-team tournament; returns the tournament detail."""
    _create_tournament(client)
    _register_teams(client, 'spring-cup', ['Lions', 'Tigers', 'Bears', 'Wolves', 'Eagles'])
    response = _start(client, 'spring-cup')
    assert response.status_code == 200
    return response.get_json()['tournament']


class TestSlugify:
    def test_slugify(self):
        assert _slugify('Spring Cup 2026!') == 'spring-cup-2026'
        assert _slugify('  --  ') == 'tournament'


class TestCreateTournament:
    """Tests for creating and listing tournaments."""

    def test_create(self, client):
        response = _create_tournament(client, start_date='2026-05-01')
        assert response.status_code == 201
        tournament = response.get_json()['tournament']
        assert tournament['id'] == 'spring-cup'
        assert tournament['status'] == 'open'
        assert tournament['max_teams'] == 8
        assert tournament['start_date'] == '2026-05-01'

    def test_requires_admin(self, client):
        login_as(client, 'alice')
        response = client.post('/api/tournaments', json={'name': 'Cup', 'max_teams': 4})
        assert response.status_code == 403

    def test_requires_login(self, client):
        response = client.post('/api/tournaments', json={'name': 'Cup', 'max_teams': 4})
        assert response.status_code == 401

    @pytest.mark.parametrize('max_teams', [None, 'abc', 1, 0])
    def test_invalid_max_teams(self, client, max_teams):
        response = _create_tournament(client, max_teams=max_teams)
        assert response.status_code == 400

    def test_missing_name(self, client):
        response = _create_tournament(client, name='  ')
        assert response.status_code == 400

    def test_bad_start_date(self, client):
        response = _create_tournament(client, start_date='01/05/2026')
        assert response.status_code == 400

    def test_duplicate_name(self, client):
        _create_tournament(client)
        response = _create_tournament(client, name='spring cup')
        assert response.status_code == 409

    def test_list_is_public(self, client):
        _create_tournament(client)
        client.post('/api/logout')
        response = client.get('/api/tournaments')
        assert response.status_code == 200
        tournaments = response.get_json()['tournaments']
        assert tournaments[0]['name'] == 'Spring Cup'
        assert tournaments[0]['team_count'] == 0

    def test_get_missing(self, client):
        response = client.get('/api/tournaments/nope')
        assert response.status_code == 404


class TestEditAndDelete:
    """Tests for editing and deleting tournaments."""

    def test_edit_open_tournament(self, client):
        _create_tournament(client)
        response = client.patch('/api/tournaments/spring-cup', json={
            'name': 'Spring Open', 'max_teams': 16, 'start_date': '2026-06-01',
        })
        assert response.status_code == 200
        tournament = response.get_json()['tournament']
        assert tournament['name'] == 'Spring Open'
        assert tournament['max_teams'] == 16
        assert tournament['start_date'] == '2026-06-01'

    def test_clear_start_date(self, client):
        _create_tournament(client, start_date='2026-05-01')
        response = client.patch('/api/tournaments/spring-cup', json={'start_date': ''})
        assert response.get_json()['tournament']['start_date'] is None

    def test_max_below_registered_rejected(self, client):
        _create_tournament(client)
        _register_teams(client, 'spring-cup', ['Lions', 'Tigers', 'Bears'])
        login_as(client, 'admin')
        response = client.patch('/api/tournaments/spring-cup', json={'max_teams': 2})
        assert response.status_code == 400

    def test_cannot_edit_max_after_start(self, client, started_cup):
        response = client.patch('/api/tournaments/spring-cup', json={'max_teams': 32})
        assert response.status_code == 400
        response = client.patch('/api/tournaments/spring-cup', json={'name': 'Renamed'})
        assert response.status_code == 200

    def test_delete(self, client):
        _create_tournament(client)
        response = client.delete('/api/tournaments/spring-cup')
        assert response.status_code == 200
        assert client.get('/api/tournaments/spring-cup').status_code == 404

    def test_delete_missing(self, client):
        login_as(client, 'admin')
        assert client.delete('/api/tournaments/nope').status_code == 404


class TestRegistration:
    """Tests for registering teams into a tournament."""

    def test_register_team(self, client):
        _create_tournament(client)
        _register_teams(client, 'spring-cup', ['Lions'])
        detail = client.get('/api/tournaments/spring-cup').get_json()
        assert [t['name'] for t in detail['teams']] == ['Lions']

    def test_register_without_team(self, client):
        _create_tournament(client)
        create_user('alice', 'pass1234')
        login_as(client, 'alice')
        response = client.post('/api/tournaments/spring-cup/register')
        assert response.status_code == 400
        assert 'create a team' in response.get_json()['error']

    def test_register_twice(self, client):
        _create_tournament(client)
        _register_teams(client, 'spring-cup', ['Lions'])
        response = client.post('/api/tournaments/spring-cup/register')
        assert response.status_code == 400
        assert 'already registered' in response.get_json()['error']

    def test_tournament_full(self, client):
        _create_tournament(client, max_teams=2)
        _register_teams(client, 'spring-cup', ['Lions', 'Tigers'])
        create_user('late', 'pass1234')
        create_team('late', 'Latecomers')
        login_as(client, 'late')
        response = client.post('/api/tournaments/spring-cup/register')
        assert response.status_code == 400
        assert 'full' in response.get_json()['error']

    def test_register_after_start(self, client, started_cup):
        create_user('late', 'pass1234')
        create_team('late', 'Latecomers')
        login_as(client, 'late')
        response = client.post('/api/tournaments/spring-cup/register')
        assert response.status_code == 400

    def test_remove_team(self, client):
        _create_tournament(client)
        _register_teams(client, 'spring-cup', ['Lions', 'Tigers'])
        login_as(client, 'admin')
        team_id = client.get('/api/tournaments/spring-cup').get_json()['teams'][0]['id']
        response = client.post(f'/api/tournaments/spring-cup/teams/{team_id}/remove')
        assert response.status_code == 200
        assert response.get_json()['tournament']['team_count'] == 1

    def test_remove_team_after_start(self, client, started_cup):
        team_id = started_cup['teams'][0]['id']
        response = client.post(f'/api/tournaments/spring-cup/teams/{team_id}/remove')
        assert response.status_code == 400


class TestStart:
    """Tests for starting a tournament."""

    def test_start_builds_bracket(self, client, started_cup):
        assert started_cup['status'] == 'started'
        assert [len(r) for r in started_cup['bracket']] == [4, 2, 1]
        assert started_cup['round_names'] == ['Quarterfinal', 'Semifinal', 'Final']
        assert started_cup['version'] > 0
        assert all(m['winner'] is None for r in started_cup['bracket'] for m in r)

    def test_start_requires_two_teams(self, client):
        _create_tournament(client)
        _register_teams(client, 'spring-cup', ['Lions'])
        response = _start(client, 'spring-cup')
        assert response.status_code == 400
        assert 'two teams' in response.get_json()['error']
        assert client.get('/api/tournaments/spring-cup').get_json()['status'] == 'open'

    def test_start_twice(self, client, started_cup):
        response = _start(client, 'spring-cup')
        assert response.status_code == 400

    def test_start_requires_admin(self, client):
        _create_tournament(client)
        _register_teams(client, 'spring-cup', ['Lions', 'Tigers'])
        login_as(client, 'captain0')
        response = client.post('/api/tournaments/spring-cup/start')
        assert response.status_code == 403

    @pytest.mark.parametrize('seed', [{'a': 1}, [1, 2], True, 1.5])
    def test_start_rejects_bad_seed(self, client, seed):
        _create_tournament(client)
        _register_teams(client, 'spring-cup', ['Lions', 'Tigers'])
        response = _start(client, 'spring-cup', seed=seed)
        assert response.status_code == 400
        assert 'seed' in response.get_json()['error'].lower()
        assert client.get('/api/tournaments/spring-cup').get_json()['status'] == 'open'

    def test_start_accepts_string_seed(self, client):
        _create_tournament(client)
        _register_teams(client, 'spring-cup', ['Lions', 'Tigers'])
        assert _start(client, 'spring-cup', seed='spring').status_code == 200

    def test_seeded_start_is_reproducible(self, client, temp_data_dir):
        names = ['Lions', 'Tigers', 'Bears', 'Wolves']
        _create_tournament(client, name='Cup A')
        _register_teams(client, 'cup-a', names)
        first = _start(client, 'cup-a', seed=9).get_json()['tournament']['bracket']

        stored = yaml.safe_load((temp_data_dir / 'tournaments.yaml').read_text())
        stored['tournaments'][0]['status'] = 'open'
        stored['tournaments'][0]['bracket'] = []
        (temp_data_dir / 'tournaments.yaml').write_text(yaml.dump(stored))

        second = _start(client, 'cup-a', seed=9).get_json()['tournament']['bracket']
        assert first == second


class TestCodeVisibility:
    """Match codes are only shown to admins and the teams playing."""

    def test_admin_sees_codes(self, client, started_cup):
        codes = [m['code'] for r in started_cup['bracket'] for m in r]
        assert all(c.isdigit() for c in codes)

    def test_player_sees_only_own_codes(self, client, started_cup):
        login_as(client, 'captain0')
        detail = client.get('/api/tournaments/spring-cup').get_json()
        for match in detail['bracket'][0]:
            if 'Lions' in (match['team1'], match['team2']):
                assert match['code'].isdigit()
            else:
                assert match['code'] == '(hidden)'

    def test_anonymous_sees_no_codes(self, client, started_cup):
        client.post('/api/logout')
        detail = client.get('/api/tournaments/spring-cup').get_json()
        assert all(m['code'] == '(hidden)' for r in detail['bracket'] for m in r)


class TestReportResults:
    """Tests for reporting results through the API."""

    def _report(self, client, round_index, match_index, winner, **extra):
        payload = {'round': round_index, 'match': match_index, 'winner': winner}
        payload.update(extra)
        return client.post('/api/tournaments/spring-cup/report', json=payload)

    def test_report_advances_winner(self, client, started_cup):
        match = started_cup['bracket'][0][0]
        winner = _pick_winner(match)
        response = self._report(client, 0, 0, winner)
        assert response.status_code == 200
        data = response.get_json()
        assert data['completed'] is False
        assert data['bracket'][0][0]['winner'] == winner
        assert data['bracket'][1][0]['team1'] == winner

    def test_play_to_completion(self, client, started_cup):
        bracket = started_cup['bracket']
        for round_index in range(len(bracket)):
            for match_index in range(len(bracket[round_index])):
                match = bracket[round_index][match_index]
                data = self._report(client, round_index, match_index, _pick_winner(match)).get_json()
                bracket = data['bracket']

        assert data['completed'] is True
        champion = data['champion']
        assert champion in ['Lions', 'Tigers', 'Bears', 'Wolves', 'Eagles']

        detail = client.get('/api/tournaments/spring-cup').get_json()
        assert detail['status'] == 'completed'
        assert detail['winner'] == champion

        champions = client.get('/api/champions').get_json()
        assert champions['past_winners'][0]['champion'] == champion

    def test_report_requires_admin(self, client, started_cup):
        login_as(client, 'captain0')
        response = self._report(client, 0, 0, 'Lions')
        assert response.status_code == 403

    def test_match_not_found(self, client, started_cup):
        response = self._report(client, 0, 9, 'Lions')
        assert response.status_code == 404
        detail = client.get('/api/tournaments/spring-cup').get_json()
        assert detail['version'] == started_cup['version']

    def test_invalid_winner(self, client, started_cup):
        response = self._report(client, 0, 0, 'Nobody')
        assert response.status_code == 400

    def test_missing_winner(self, client, started_cup):
        response = self._report(client, 0, 0, '')
        assert response.status_code == 400

    def test_changing_decided_match_rejected(self, client, started_cup):
        match = started_cup['bracket'][0][0]
        self._report(client, 0, 0, match['team1'])
        response = self._report(client, 0, 0, match['team2'])
        assert response.status_code == 409

    def test_stale_version_rejected(self, client, started_cup):
        """A second session reporting from an outdated view gets a conflict."""
        version = started_cup['version']
        first = started_cup['bracket'][0][0]
        second = started_cup['bracket'][0][1]
        assert self._report(client, 0, 0, first['team1'], version=version).status_code == 200
        response = self._report(client, 0, 1, second['team1'], version=version)
        assert response.status_code == 409
        detail = client.get('/api/tournaments/spring-cup').get_json()
        assert detail['bracket'][0][1]['winner'] is None

    def test_report_before_opponent_known(self, client, started_cup):
        first = started_cup['bracket'][0][0]
        self._report(client, 0, 0, first['team1'])
        response = self._report(client, 1, 0, first['team1'])
        assert response.status_code == 409
        detail = client.get('/api/tournaments/spring-cup').get_json()
        assert detail['bracket'][1][0]['winner'] is None
        assert detail['status'] == 'started'

    def test_boolean_round_rejected(self, client, started_cup):
        response = self._report(client, True, 0, started_cup['bracket'][1][0]['team1'])
        assert response.status_code == 404

    def test_report_on_open_tournament(self, client):
        _create_tournament(client)
        response = self._report(client, 0, 0, 'Lions')
        assert response.status_code == 400


class TestChampions:
    """Tests for the champions listing."""

    def test_static_champions(self, client, temp_data_dir):
        (temp_data_dir / 'champions.yaml').write_text(yaml.dump({'champions': [
            {'tournament': 'Winter Classic 2024', 'champion': 'Old Guard'},
        ]}))
        data = client.get('/api/champions').get_json()
        assert data['static_champions'][0]['champion'] == 'Old Guard'
        assert data['past_winners'] == []
