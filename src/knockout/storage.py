"""
YAML-backed tournament store.

All tournaments live in a single ``tournaments.yaml`` file inside the data
directory. Each record carries a ``version`` that is bumped on every write;
bracket saves are rejected with Conflict when the caller's copy is stale.
"""
import copy
import logging
import os
from typing import Dict, List, Optional

import yaml
from filelock import FileLock

from knockout.errors import Conflict, TournamentNotFound
from knockout.models import Bracket

logger = logging.getLogger(__name__)

TOURNAMENTS_FILENAME = 'tournaments.yaml'


class TournamentStore:
    def __init__(self, data_dir: str, lock_timeout: int = 10):
        self.data_dir = data_dir
        self.path = os.path.join(data_dir, TOURNAMENTS_FILENAME)
        os.makedirs(data_dir, exist_ok=True)
        self._lock = FileLock(os.path.join(data_dir, '.tournaments.lock'), timeout=lock_timeout)

    def _read(self) -> List[Dict]:
        if not os.path.exists(self.path):
            return []
        with open(self.path, 'r', encoding='utf-8') as f:
            data = yaml.safe_load(f)
        if not data:
            return []
        return data.get('tournaments', [])

    def _write(self, tournaments: List[Dict]):
        with open(self.path, 'w', encoding='utf-8') as f:
            yaml.dump({'tournaments': tournaments}, f, default_flow_style=False)

    @staticmethod
    def _find(tournaments: List[Dict], tournament_id: str) -> Optional[Dict]:
        for record in tournaments:
            if record.get('id') == tournament_id:
                return record
        return None

    def list(self) -> List[Dict]:
        """All tournament records, newest first."""
        with self._lock:
            tournaments = self._read()
        return sorted(tournaments, key=lambda t: t.get('created', ''), reverse=True)

    def get(self, tournament_id: str) -> Dict:
        with self._lock:
            record = self._find(self._read(), tournament_id)
        if record is None:
            raise TournamentNotFound(tournament_id)
        return record

    def exists(self, tournament_id: str) -> bool:
        with self._lock:
            return self._find(self._read(), tournament_id) is not None

    def create(self, record: Dict) -> Dict:
        """Add a new tournament record. Raises ValueError if the id is taken."""
        with self._lock:
            tournaments = self._read()
            if self._find(tournaments, record['id']) is not None:
                raise ValueError(f'A tournament with id "{record["id"]}" already exists.')
            record = copy.deepcopy(record)
            record.setdefault('version', 0)
            tournaments.append(record)
            self._write(tournaments)
        return record

    def update(self, tournament_id: str, expected_version: Optional[int] = None, **fields) -> Dict:
        """Update fields on a tournament record and bump its version."""
        with self._lock:
            tournaments = self._read()
            record = self._find(tournaments, tournament_id)
            if record is None:
                raise TournamentNotFound(tournament_id)
            current = record.get('version', 0)
            if expected_version is not None and expected_version != current:
                logger.warning('Rejected stale write to %s (version %s, current %s)',
                               tournament_id, expected_version, current)
                raise Conflict(tournament_id, expected_version, current)
            record.update(fields)
            record['version'] = current + 1
            self._write(tournaments)
        return record

    def delete(self, tournament_id: str):
        with self._lock:
            tournaments = self._read()
            remaining = [t for t in tournaments if t.get('id') != tournament_id]
            if len(remaining) == len(tournaments):
                raise TournamentNotFound(tournament_id)
            self._write(remaining)

    def load_bracket(self, tournament_id: str) -> Bracket:
        record = self.get(tournament_id)
        return Bracket.from_list(record.get('bracket'), version=record.get('version', 0))

    def save_bracket(self, tournament_id: str, bracket: Bracket, **fields) -> int:
        """
        Persist a bracket (plus any tournament fields such as status/winner)
        as one record update.

        The write only succeeds if the stored version still matches
        ``bracket.version``. On success the bracket's version is advanced and
        returned.
        """
        record = self.update(tournament_id, expected_version=bracket.version,
                             bracket=bracket.to_list(), **fields)
        bracket.version = record['version']
        logger.info('Saved bracket for %s at version %s', tournament_id, bracket.version)
        return bracket.version
