"""JSON persistence for Q-tables."""

import json
import logging
import re
from pathlib import Path
from typing import List, Optional

from ..domain.qlearning import QLearningAgent, QTable, SerializedQTable

logger = logging.getLogger(__name__)

DEFAULT_KEY = "micromouse_qtable"
BEST_RUN_KEY = "micromouse_best"


class QTableStore:
    """
    Saves and loads Q-tables as JSON files, one file per key.

    Each file holds the ordered list of ``[state_key, [4 values]]`` pairs.
    Failures are reported as ``False`` and logged, never raised.
    """

    def __init__(self, directory: str = "saved_qtables"):
        self.directory = Path(directory)

    def path_for(self, key: str) -> Path:
        safe_key = re.sub(r"[^A-Za-z0-9_\-]", "_", key) or DEFAULT_KEY
        return self.directory / f"{safe_key}.json"

    def exists(self, key: str = DEFAULT_KEY) -> bool:
        return self.path_for(key).exists()

    def list_keys(self) -> List[str]:
        if not self.directory.exists():
            return []
        return sorted(p.stem for p in self.directory.glob("*.json"))

    def write(self, data: SerializedQTable, key: str = DEFAULT_KEY) -> bool:
        """Write already-serialized Q-table data under ``key``."""
        path = self.path_for(key)
        try:
            self.directory.mkdir(parents=True, exist_ok=True)
            tmp_path = path.with_suffix(".json.tmp")
            with open(tmp_path, "w") as f:
                json.dump(data, f)
            tmp_path.replace(path)
            return True
        except (OSError, TypeError, ValueError) as e:
            logger.error("Failed to save Q-table %s: %s", path, e)
            return False

    def read(self, key: str = DEFAULT_KEY) -> Optional[QTable]:
        """Read and validate the table stored under ``key``; None on any failure."""
        path = self.path_for(key)
        if not path.exists():
            logger.info("No saved Q-table at %s", path)
            return None
        try:
            with open(path, "r") as f:
                data = json.load(f)
            return QTable.from_serializable(data)
        except (OSError, json.JSONDecodeError, ValueError, TypeError) as e:
            logger.error("Failed to load Q-table %s: %s", path, e)
            return None

    def save(self, agent: QLearningAgent, key: str = DEFAULT_KEY) -> bool:
        """Save the agent's current Q-table."""
        saved = self.write(agent.export_q_table(), key)
        if saved:
            logger.info("Saved %d Q-table states to %s", len(agent.q_table), self.path_for(key))
        return saved

    def load(self, agent: QLearningAgent, key: str = DEFAULT_KEY) -> bool:
        """
        Replace the agent's Q-table with the saved one.

        On failure the agent's table is left untouched.
        """
        table = self.read(key)
        if table is None:
            return False
        agent.q_table = table
        logger.info("Loaded %d Q-table states from %s", len(table), self.path_for(key))
        return True

    def delete(self, key: str = DEFAULT_KEY) -> bool:
        try:
            self.path_for(key).unlink()
            return True
        except OSError as e:
            logger.error("Failed to delete Q-table %s: %s", key, e)
            return False


def attach_best_run_autosave(session, store: QTableStore, key: str = BEST_RUN_KEY):
    """Persist the scoreboard's best Q-table whenever a run takes first place."""
    def save_if_best(episode):
        best = session.scoreboard.best()
        if episode.reached_goal and best is not None and best.generation == episode.number:
            store.write(QTable(best.q_table).to_serializable(), key)

    session.on_episode_end(save_if_best)
    return save_if_best
