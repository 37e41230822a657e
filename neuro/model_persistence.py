"""
model_persistence.py
~~~~~~~~~~~~~~~~~~~~

Saving and loading networks.

Two storage forms share one format, the document produced by
``Network.to_json``:

- standalone ``.json`` model files (what the CLI writes and the browser
  demo imports)
- a SQLite model store that keeps the document next to its metadata
  (architecture, loss, training status, accuracy, timestamps)

The module-level store functions never raise for storage problems: they log
and return a sentinel (``False``, ``None``, ``[]`` or ``-1``).
"""

import os
import json
import sqlite3
import logging
from contextlib import contextmanager
from typing import Any, Dict, Iterator, List, Optional

from neuro.errors import NeuroError
from neuro.network import DEFAULT_PRECISION, Network

logger = logging.getLogger(__name__)

DEFAULT_MODEL_DIR = 'models'
DB_FILENAME = 'networks.db'

_METADATA_COLUMNS = (
    'network_id, architecture, loss_function, trained, accuracy, '
    'created_at, updated_at'
)


def architecture_of(network: Network) -> List[Dict[str, Any]]:
    """``[{'neurons': n, 'activation': name}, ...]`` for each layer."""
    return [
        {'neurons': len(layer), 'activation': layer.activation_function.name}
        for layer in network.layers
    ]


def _make_parent_dir(path: str) -> None:
    parent = os.path.dirname(path)
    if parent:
        os.makedirs(parent, exist_ok=True)


def _dump(network: Network, precision: int) -> str:
    return json.dumps(network.to_json(precision), separators=(',', ':'))


# ============================================================================
# JSON FILES
# ============================================================================

def save_model_file(
    network: Network,
    file_path: str,
    precision: int = DEFAULT_PRECISION
) -> None:
    """
    Write ``network`` to ``file_path`` as a compact model document.

    The document goes to a sibling temporary file that then replaces
    ``file_path``, so a failed save leaves the previous model intact.
    Missing parent directories are created. ``OSError`` propagates.

    Raises:
        ValueError: A weight or bias is infinite or NaN
    """
    content = _dump(network, precision)

    _make_parent_dir(file_path)
    temp_path = f"{file_path}.tmp"
    try:
        with open(temp_path, 'w', encoding='utf-8') as f:
            f.write(content)
        os.replace(temp_path, file_path)
    except OSError:
        if os.path.exists(temp_path):
            os.remove(temp_path)
        raise

    logger.info(f"Model written to {file_path}")


def load_model_file(file_path: str, precision: int = DEFAULT_PRECISION) -> Network:
    """
    Rebuild a network from a model document on disk.

    Raises:
        OSError: File missing or unreadable
        json.JSONDecodeError: Not JSON
        NeuroError: JSON that does not describe a network
    """
    with open(file_path, 'r', encoding='utf-8') as f:
        document = json.load(f)

    network = Network.from_json(document, precision)
    logger.info(f"Model read from {file_path}: {network.sizes}")
    return network


# ============================================================================
# SQLITE MODEL STORE
# ============================================================================

class ModelDatabase:
    """
    SQLite-backed model store.

    One row per network id. ``network_data`` holds the model document as
    JSON text; ``architecture`` holds ``architecture_of`` as JSON so
    listings never have to rebuild networks.

    Args:
        db_path: SQLite file, created along with its directory on first use
        precision: Fixed-point digits of stored documents
    """

    def __init__(self, db_path: str = os.path.join(DEFAULT_MODEL_DIR, DB_FILENAME),
                 precision: int = DEFAULT_PRECISION):
        self.db_path = db_path
        self.precision = precision
        _make_parent_dir(db_path)
        self._create_tables()

    @contextmanager
    def _get_connection(self) -> Iterator[sqlite3.Connection]:
        """Yield a connection that commits on success and rolls back on error."""
        conn = sqlite3.connect(self.db_path)
        conn.row_factory = sqlite3.Row
        try:
            yield conn
            conn.commit()
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()

    def _create_tables(self) -> None:
        with self._get_connection() as conn:
            conn.execute('''
                CREATE TABLE IF NOT EXISTS networks (
                    network_id TEXT PRIMARY KEY,
                    architecture TEXT NOT NULL,
                    loss_function TEXT NOT NULL,
                    network_data TEXT NOT NULL,
                    trained INTEGER NOT NULL DEFAULT 0,
                    accuracy REAL,
                    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                    updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
                )
            ''')
            conn.execute(
                'CREATE INDEX IF NOT EXISTS idx_trained ON networks(trained)'
            )
            conn.execute(
                'CREATE INDEX IF NOT EXISTS idx_created_at ON networks(created_at DESC)'
            )

    @staticmethod
    def _row_to_metadata(row: sqlite3.Row) -> Dict[str, Any]:
        metadata = dict(row)
        metadata['architecture'] = json.loads(row['architecture'])
        metadata['trained'] = bool(row['trained'])
        return metadata

    def _fetch_document(self, network_id: str) -> Optional[Dict[str, Any]]:
        with self._get_connection() as conn:
            row = conn.execute(
                'SELECT network_data FROM networks WHERE network_id = ?',
                (network_id,)
            ).fetchone()
        return None if row is None else json.loads(row['network_data'])

    def save_network_to_db(
        self,
        network: Network,
        network_id: str,
        trained: bool = True,
        accuracy: Optional[float] = None
    ) -> bool:
        """
        Insert or replace the network stored under ``network_id``.

        Replacing keeps the row's ``created_at`` and refreshes ``updated_at``.

        Raises:
            ValueError: ``accuracy`` outside [0, 1]
        """
        if accuracy is not None and not 0.0 <= accuracy <= 1.0:
            raise ValueError(f"accuracy must lie in [0, 1], got {accuracy}")

        row = (
            network_id,
            json.dumps(architecture_of(network)),
            network.loss_function.name,
            _dump(network, self.precision),
            int(bool(trained)),
            accuracy,
        )
        with self._get_connection() as conn:
            conn.execute('''
                INSERT INTO networks
                    (network_id, architecture, loss_function, network_data,
                     trained, accuracy, updated_at)
                VALUES (?, ?, ?, ?, ?, ?, CURRENT_TIMESTAMP)
                ON CONFLICT(network_id) DO UPDATE SET
                    architecture = excluded.architecture,
                    loss_function = excluded.loss_function,
                    network_data = excluded.network_data,
                    trained = excluded.trained,
                    accuracy = excluded.accuracy,
                    updated_at = CURRENT_TIMESTAMP
            ''', row)

        logger.info(
            f"Stored network '{network_id}' {network.sizes} "
            f"(trained={trained}, accuracy={accuracy})"
        )
        return True

    def load_network_from_db(self, network_id: str) -> Optional[Network]:
        """Rebuild the stored network, or None if the id is unknown."""
        document = self._fetch_document(network_id)
        if document is None:
            logger.warning(f"No stored network '{network_id}'")
            return None

        network = Network.from_json(document, self.precision)
        logger.info(f"Restored network '{network_id}' {network.sizes}")
        return network

    def load_document_from_db(self, network_id: str) -> Optional[Dict[str, Any]]:
        return self._fetch_document(network_id)

    def list_networks_from_db(self) -> List[Dict[str, Any]]:
        """
        Metadata of every stored network, newest first.

        Besides the stored columns each entry carries ``weights_shape``
        (``[rows, cols]`` per layer) and ``biases_shape`` (``[rows, 1]``).
        The first layer reads the raw input vector, whose length equals its
        own neuron count.
        """
        with self._get_connection() as conn:
            rows = conn.execute(
                f'SELECT {_METADATA_COLUMNS} FROM networks ORDER BY created_at DESC'
            ).fetchall()

        networks = []
        for row in rows:
            metadata = self._row_to_metadata(row)
            sizes = [layer['neurons'] for layer in metadata['architecture']]
            fan_ins = sizes[:1] + sizes[:-1]
            metadata['weights_shape'] = [[n, fan_in] for n, fan_in in zip(sizes, fan_ins)]
            metadata['biases_shape'] = [[n, 1] for n in sizes]
            networks.append(metadata)

        logger.debug(f"{len(networks)} network(s) in {self.db_path}")
        return networks

    def delete_network_from_db(self, network_id: str) -> bool:
        """Remove one network. Returns False if the id was not stored."""
        with self._get_connection() as conn:
            deleted = conn.execute(
                'DELETE FROM networks WHERE network_id = ?', (network_id,)
            ).rowcount > 0

        if deleted:
            logger.info(f"Removed stored network '{network_id}'")
        else:
            logger.warning(f"Nothing to remove for '{network_id}'")
        return deleted

    def get_network_metadata_from_db(self, network_id: str) -> Optional[Dict[str, Any]]:
        """Stored metadata without the model document, or None."""
        with self._get_connection() as conn:
            row = conn.execute(
                f'SELECT {_METADATA_COLUMNS} FROM networks WHERE network_id = ?',
                (network_id,)
            ).fetchone()

        if row is None:
            logger.warning(f"No metadata for '{network_id}'")
            return None
        return self._row_to_metadata(row)

    def delete_old_networks_from_db(self, days: float = 2) -> int:
        """
        Remove networks whose ``created_at`` is more than ``days`` days ago.

        Returns:
            Number of removed rows

        Raises:
            ValueError: ``days`` is negative
        """
        if days < 0:
            raise ValueError(f"days must be non-negative, got {days}")

        with self._get_connection() as conn:
            deleted = conn.execute(
                "DELETE FROM networks WHERE julianday('now') - julianday(created_at) > ?",
                (days,)
            ).rowcount

        logger.info(f"Expired {deleted} network(s) older than {days} day(s)")
        return deleted


# ============================================================================
# MODULE-LEVEL STORE API
# ============================================================================

_default_db: Optional[ModelDatabase] = None


def _db_for(model_dir: str) -> ModelDatabase:
    """Shared instance for the default directory, a fresh one otherwise."""
    global _default_db
    if model_dir != DEFAULT_MODEL_DIR:
        return ModelDatabase(db_path=os.path.join(model_dir, DB_FILENAME))
    if _default_db is None:
        _default_db = ModelDatabase()
    return _default_db


def _valid_id(network_id: Any) -> bool:
    if isinstance(network_id, str) and network_id:
        return True
    logger.error(f"Rejected network id {network_id!r}: expected a non-empty string")
    return False


def save_network(
    network: Network,
    network_id: str,
    model_dir: str = DEFAULT_MODEL_DIR,
    trained: bool = True,
    accuracy: Optional[float] = None
) -> bool:
    """
    Store ``network`` under ``network_id``.

    Returns:
        True once stored, False on any failure (logged)

    Example:
        >>> net = Network([LayerSpec(784), LayerSpec(10, 'Softmax')])
        >>> save_network(net, "digits", trained=False)
        True
    """
    if not _valid_id(network_id):
        return False

    try:
        return _db_for(model_dir).save_network_to_db(network, network_id, trained, accuracy)
    except ValueError as e:
        logger.error(f"Refused to store '{network_id}': {e}")
    except sqlite3.Error as e:
        logger.error(f"SQLite failure storing '{network_id}': {e}")
    except Exception as e:
        logger.exception(f"Could not store '{network_id}': {e}")
    return False


def load_network(network_id: str, model_dir: str = DEFAULT_MODEL_DIR) -> Optional[Network]:
    """Rebuild a stored network; None if unknown or unreadable (logged)."""
    if not _valid_id(network_id):
        return None

    try:
        return _db_for(model_dir).load_network_from_db(network_id)
    except (NeuroError, json.JSONDecodeError) as e:
        logger.error(f"Stored document of '{network_id}' is invalid: {e}")
    except sqlite3.Error as e:
        logger.error(f"SQLite failure reading '{network_id}': {e}")
    except Exception as e:
        logger.exception(f"Could not restore '{network_id}': {e}")
    return None


def load_network_document(
    network_id: str,
    model_dir: str = DEFAULT_MODEL_DIR
) -> Optional[Dict[str, Any]]:
    """The stored model document as a dict, or None."""
    try:
        return _db_for(model_dir).load_document_from_db(network_id)
    except (sqlite3.Error, json.JSONDecodeError) as e:
        logger.error(f"Could not read the document of '{network_id}': {e}")
        return None


def list_saved_networks(model_dir: str = DEFAULT_MODEL_DIR) -> List[Dict[str, Any]]:
    """Metadata of every stored network; empty on failure (logged)."""
    try:
        return _db_for(model_dir).list_networks_from_db()
    except (sqlite3.Error, json.JSONDecodeError) as e:
        logger.error(f"Could not list stored networks: {e}")
    except Exception as e:
        logger.exception(f"Listing stored networks failed: {e}")
    return []


def delete_network(network_id: str, model_dir: str = DEFAULT_MODEL_DIR) -> bool:
    """Remove a stored network; False if unknown or on failure (logged)."""
    if not _valid_id(network_id):
        return False

    try:
        return _db_for(model_dir).delete_network_from_db(network_id)
    except sqlite3.Error as e:
        logger.error(f"SQLite failure removing '{network_id}': {e}")
    except Exception as e:
        logger.exception(f"Could not remove '{network_id}': {e}")
    return False


def get_network_metadata(
    network_id: str,
    model_dir: str = DEFAULT_MODEL_DIR
) -> Optional[Dict[str, Any]]:
    """Stored metadata of one network without rebuilding it, or None."""
    if not _valid_id(network_id):
        return None

    try:
        return _db_for(model_dir).get_network_metadata_from_db(network_id)
    except (sqlite3.Error, json.JSONDecodeError) as e:
        logger.error(f"Could not read metadata of '{network_id}': {e}")
        return None


def delete_old_networks(days: float = 2, model_dir: str = DEFAULT_MODEL_DIR) -> int:
    """
    Remove networks older than ``days`` days.

    Returns:
        Number removed, or -1 when SQLite fails (logged)

    Raises:
        ValueError: ``days`` is negative
    """
    try:
        return _db_for(model_dir).delete_old_networks_from_db(days)
    except sqlite3.Error as e:
        logger.error(f"Expiring networks failed: {e}")
        return -1
