"""
api_server.py
~~~~~~~~~~~~~

REST + WebSocket backend for the browser digit-drawing demo.

Routes (all under ``/api``):
- ``status``                           server health and counters
- ``networks``                         create, list, delete all
- ``networks/import``                  upload a model document
- ``networks/<id>``                    delete one network
- ``networks/<id>/model``              download the model document
- ``networks/<id>/recognize``          classify a drawn digit
- ``networks/<id>/train``              start a background training job
- ``networks/<id>/example``            render a (mis)recognized test digit
- ``networks/cleanup``                 drop networks older than N days
- ``training/<job_id>``                poll a training job

Training progress is pushed to clients with Flask-SocketIO events;
background work runs as gevent greenlets.
"""

import sys
import uuid
import base64
import logging
from io import BytesIO
from typing import Dict, Any, List, Optional, Set, Tuple

import gevent
import numpy as np
from flask import Flask, request, jsonify
from flask_cors import CORS
from flask_socketio import SocketIO

# Headless rendering for the example endpoint
import matplotlib
matplotlib.use('Agg')
import matplotlib.pyplot as plt

from neuro import trainer
from neuro.config import Settings, configure_logging
from neuro.errors import NeuroError
from neuro.image_processor import Sample, create_path_set, normalize_pixels
from neuro.model_persistence import (
    architecture_of,
    save_network,
    load_network,
    load_network_document,
    list_saved_networks,
    delete_network,
    delete_old_networks
)
from neuro.network import Network
from neuro.recognizer import recognize_image, recognize_vector

settings = Settings.from_env()
configure_logging(settings)
logger = logging.getLogger(__name__)

app = Flask(__name__)
CORS(app, resources={r"/api/*": {"origins": "*"}})

socketio = SocketIO(
    app,
    cors_allowed_origins="*",
    async_mode='gevent',
    logger=not settings.is_production,
    engineio_logger=not settings.is_production,
    ping_timeout=60,
    ping_interval=25
)

DEFAULT_LAYERS = [
    {'neurons': 784, 'activation': 'ReLU'},
    {'neurons': 64, 'activation': 'ReLU'},
    {'neurons': 10, 'activation': 'Softmax'},
]

CLEANUP_MAX_AGE_DAYS = 2
CLEANUP_INTERVAL = 24 * 60 * 60
CLEANUP_RETRY_INTERVAL = 60 * 60

RUNNING_STATES = ('pending', 'training')
FINISHED_STATES = ('completed', 'failed')

# network_id -> {'network', 'architecture', 'loss_function', 'trained', 'accuracy'}
active_networks: Dict[str, Dict[str, Any]] = {}

# job_id -> {'network_id', 'status', 'progress', 'epochs', ...}
training_jobs: Dict[str, Dict[str, Any]] = {}

# Filled by load_dataset(); None means training is unavailable
training_data: Optional[List[Sample]] = None
test_data: Optional[List[Sample]] = None

_cleanup_greenlet = None


# ============================================================================
# STARTUP
# ============================================================================

def load_dataset(dataset_dir: Optional[str] = None, test_fraction: float = 0.2) -> None:
    """
    Read the digit dataset and split it into training and test samples.

    Does nothing when no dataset directory is configured.
    """
    global training_data, test_data

    dataset_dir = dataset_dir or settings.dataset_dir
    if not dataset_dir:
        logger.info("NEURO_DATASET_DIR not set, training endpoints disabled")
        return

    logger.info(f"Reading digit dataset from {dataset_dir}")
    try:
        samples = trainer.shuffle_data(create_path_set(dataset_dir))
    except OSError as e:
        logger.exception(f"Cannot read dataset {dataset_dir}: {e}")
        raise

    split = int(len(samples) * (1 - test_fraction))
    training_data, test_data = samples[:split], samples[split:]
    logger.info(f"Dataset ready: {len(training_data)} train / {len(test_data)} test samples")


def register_network(network_id: str, net: Network, trained: bool = False,
                     accuracy: Optional[float] = None) -> Dict[str, Any]:
    entry = {
        'network': net,
        'architecture': architecture_of(net),
        'loss_function': net.loss_function.name,
        'trained': trained,
        'accuracy': accuracy
    }
    active_networks[network_id] = entry
    return entry


def reload_saved_networks() -> None:
    """Bring every network of the model store back into memory."""
    stored = list_saved_networks(settings.model_dir)
    restored = 0

    for meta in stored:
        network_id = meta['network_id']
        net = load_network(network_id, settings.model_dir)
        if net is None:
            logger.warning(f"Skipping unreadable stored network {network_id}")
            continue
        register_network(network_id, net, meta['trained'], meta['accuracy'])
        restored += 1

    logger.info(f"Restored {restored} of {len(stored)} stored network(s)")


# ============================================================================
# HOUSEKEEPING
# ============================================================================

def _stored_ids() -> Set[str]:
    return {meta['network_id'] for meta in list_saved_networks(settings.model_dir)}


def expire_old_networks(days: float) -> int:
    """
    Delete stored networks older than ``days`` and unload those same ids.

    Networks that were never stored, and networks still training, stay
    loaded. Returns the store's count, ``-1`` on failure.
    """
    before = _stored_ids()
    deleted = delete_old_networks(days=days, model_dir=settings.model_dir)
    if deleted <= 0:
        return deleted

    for network_id in before - _stored_ids():
        if network_id in active_networks and not _is_training(network_id):
            active_networks.pop(network_id)
            logger.info(f"Unloaded network {network_id}: expired from the model store")
    return deleted


def cleanup_finished_training_jobs() -> None:
    """Forget jobs that have completed or failed."""
    finished = [job_id for job_id, job in training_jobs.items()
                if job.get('status') in FINISHED_STATES]
    for job_id in finished:
        training_jobs.pop(job_id)

    if finished:
        logger.info(f"Forgot {len(finished)} finished training job(s)")


def run_housekeeping() -> None:
    """One cleanup round: expire old networks, then prune finished jobs."""
    deleted = expire_old_networks(CLEANUP_MAX_AGE_DAYS)

    if deleted < 0:
        logger.error("Expiring old networks failed, see previous errors")
    elif deleted:
        logger.info(f"Expired {deleted} network(s) older than {CLEANUP_MAX_AGE_DAYS} days")
    else:
        logger.info("No expired networks")

    cleanup_finished_training_jobs()


def cleanup_old_networks_task() -> None:
    """Run housekeeping now and then once per ``CLEANUP_INTERVAL`` seconds."""
    while True:
        try:
            run_housekeeping()
            gevent.sleep(CLEANUP_INTERVAL)
        except Exception as e:
            logger.exception(f"Housekeeping round failed, retrying in an hour: {e}")
            gevent.sleep(CLEANUP_RETRY_INTERVAL)


def start_cleanup_task() -> None:
    """Spawn the housekeeping greenlet unless it is already running."""
    global _cleanup_greenlet

    if _cleanup_greenlet is not None:
        return
    _cleanup_greenlet = gevent.spawn(cleanup_old_networks_task)
    logger.info("Housekeeping greenlet started")


def init_app() -> Flask:
    """
    Prepare global state and return the Flask app.

    Usable as a WSGI factory: ``gunicorn 'neuro.api_server:init_app()'``.
    """
    load_dataset()
    reload_saved_networks()
    training_jobs.clear()
    start_cleanup_task()
    return app


# ============================================================================
# HELPERS
# ============================================================================

def error_response(message: str, status: int) -> Tuple[Any, int]:
    return jsonify({'error': message}), status


def _lookup(network_id: str) -> Optional[Dict[str, Any]]:
    entry = active_networks.get(network_id)
    if entry is None:
        logger.warning(f"Unknown network requested: {network_id}")
    return entry


def _is_training(network_id: str) -> bool:
    return any(
        job['network_id'] == network_id and job['status'] in RUNNING_STATES
        for job in training_jobs.values()
    )


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def create_digit_image(image_data: np.ndarray, predicted: int, actual: int) -> str:
    """
    Render a digit as a PNG and return it base64 encoded.

    Args:
        image_data: 2-D array with values in [0, 1]
        predicted: Digit chosen by the network
        actual: Label of the sample
    """
    fig = plt.figure(figsize=(3, 3))
    try:
        plt.imshow(image_data, cmap='gray', vmin=0, vmax=1)
        plt.title(f"network: {predicted}, label: {actual}")
        plt.axis('off')

        buffer = BytesIO()
        fig.savefig(buffer, format='png', bbox_inches='tight')
    finally:
        plt.close(fig)

    return base64.b64encode(buffer.getvalue()).decode('ascii')


# ============================================================================
# NETWORK ENDPOINTS
# ============================================================================

@app.route('/api/status', methods=['GET'])
def get_status():
    running = sum(1 for job in training_jobs.values()
                  if job.get('status') in RUNNING_STATES)
    return jsonify({
        'status': 'online',
        'active_networks': len(active_networks),
        'training_jobs': running,
        'dataset_loaded': training_data is not None
    }), 200


@app.route('/api/networks', methods=['POST'])
def create_network():
    """
    Build a randomly initialized network.

    Body (optional): ``{'layers': [{'neurons', 'activation'}, ...],
    'loss': name, 'seed': int}``. Without ``layers`` the 784-64-10 digit
    architecture is used.
    """
    body = request.get_json(silent=True) or {}
    layers = body.get('layers', DEFAULT_LAYERS)
    seed = body.get('seed')

    if not isinstance(layers, list) or not all(isinstance(layer, dict) for layer in layers):
        return error_response('layers must be a list of {neurons, activation} objects', 400)
    if seed is not None and (not isinstance(seed, int) or isinstance(seed, bool)):
        return error_response('seed must be an integer', 400)

    try:
        net = Network(layers, body.get('loss'), rng=np.random.default_rng(seed))
    except (NeuroError, KeyError, TypeError, ValueError) as e:
        logger.warning(f"Rejected architecture {layers}: {e}")
        return error_response(f'Invalid architecture: {e}', 400)

    network_id = str(uuid.uuid4())
    entry = register_network(network_id, net)
    logger.info(f"Network {network_id} created: {net.sizes}, loss {net.loss_function.name}")

    return jsonify({
        'network_id': network_id,
        'architecture': entry['architecture'],
        'loss_function': entry['loss_function'],
        'status': 'created'
    }), 201


@app.route('/api/networks/import', methods=['POST'])
def import_network():
    """Register and store a network uploaded as a model document."""
    document = request.get_json(silent=True)
    if not isinstance(document, dict):
        return error_response('Request body must be a model document', 400)

    try:
        net = Network.from_json(document, settings.precision)
    except (NeuroError, ValueError) as e:
        logger.warning(f"Rejected uploaded model: {e}")
        return error_response(f'Invalid model document: {e}', 400)

    network_id = str(uuid.uuid4())
    if not save_network(net, network_id, model_dir=settings.model_dir, trained=True):
        return error_response('Model could not be stored', 500)
    entry = register_network(network_id, net, trained=True)
    logger.info(f"Network {network_id} imported: {net.sizes}")

    return jsonify({
        'network_id': network_id,
        'architecture': entry['architecture'],
        'loss_function': entry['loss_function'],
        'status': 'imported'
    }), 201


@app.route('/api/networks/<network_id>/model', methods=['GET'])
def export_network(network_id: str):
    entry = active_networks.get(network_id)
    if entry is not None:
        return jsonify(entry['network'].to_json(settings.precision)), 200

    document = load_network_document(network_id, settings.model_dir)
    if document is None:
        return error_response('Network not found', 404)
    return jsonify(document), 200


@app.route('/api/networks', methods=['GET'])
def list_networks():
    """In-memory networks first, then stored networks that are not loaded."""
    networks = [
        {
            'network_id': network_id,
            'architecture': entry['architecture'],
            'loss_function': entry['loss_function'],
            'trained': entry['trained'],
            'accuracy': entry['accuracy'],
            'status': 'in_memory'
        }
        for network_id, entry in active_networks.items()
    ]

    for meta in list_saved_networks(settings.model_dir):
        if meta['network_id'] not in active_networks:
            networks.append(dict(meta, status='saved'))

    return jsonify({'networks': networks}), 200


@app.route('/api/networks/<network_id>', methods=['DELETE'])
def delete_network_endpoint(network_id: str):
    if _is_training(network_id):
        return error_response('Network is being trained', 409)

    from_memory = active_networks.pop(network_id, None) is not None
    from_disk = delete_network(network_id, settings.model_dir)

    if not (from_memory or from_disk):
        return error_response('Network not found', 404)

    logger.info(f"Network {network_id} deleted (memory={from_memory}, store={from_disk})")
    return jsonify({
        'network_id': network_id,
        'deleted_from_memory': from_memory,
        'deleted_from_disk': from_disk
    }), 200


@app.route('/api/networks', methods=['DELETE'])
def delete_all_networks():
    stored_ids = {meta['network_id'] for meta in list_saved_networks(settings.model_dir)}
    network_ids = set(active_networks) | stored_ids

    from_memory = 0
    from_disk = 0
    for network_id in network_ids:
        from_memory += active_networks.pop(network_id, None) is not None
        from_disk += delete_network(network_id, settings.model_dir)

    logger.info(f"Deleted every network: {len(network_ids)} id(s), "
                f"{from_memory} loaded, {from_disk} stored")

    return jsonify({
        'deleted_count': len(network_ids),
        'deleted_from_memory': from_memory,
        'deleted_from_disk': from_disk,
        'message': f'Deleted {len(network_ids)} network(s)'
    }), 200


@app.route('/api/networks/cleanup', methods=['POST'])
def cleanup_old_networks_endpoint():
    """Expire stored networks older than ``days`` (body, default 2)."""
    body = request.get_json(silent=True) or {}
    days = body.get('days', CLEANUP_MAX_AGE_DAYS)

    if not _is_number(days) or days < 0:
        return error_response('days must be a non-negative number', 400)

    deleted = expire_old_networks(days)
    if deleted < 0:
        return error_response('Cleanup failed', 500)

    logger.info(f"Cleanup on request: {deleted} network(s) older than {days} day(s)")

    return jsonify({
        'deleted_count': deleted,
        'days': days,
        'message': f'Deleted {deleted} network(s) older than {days} day(s)'
    }), 200


# ============================================================================
# RECOGNITION
# ============================================================================

@app.route('/api/networks/<network_id>/recognize', methods=['POST'])
def recognize(network_id: str):
    """
    Classify a drawing from the demo's pixel grid.

    Body: ``{'pixels': [0, 255, ...], 'max_value': 255}``
    """
    entry = _lookup(network_id)
    if entry is None:
        return error_response('Network not found', 404)

    body = request.get_json(silent=True) or {}
    pixels = body.get('pixels')
    max_value = body.get('max_value', 255)

    if not isinstance(pixels, list):
        return error_response('pixels must be a list of numbers', 400)
    if not _is_number(max_value) or max_value <= 0:
        return error_response('max_value must be a positive number', 400)

    try:
        result = recognize_vector(entry['network'], normalize_pixels(pixels, max_value))
    except (NeuroError, TypeError, ValueError) as e:
        return error_response(str(e), 400)

    return jsonify({
        'network_id': network_id,
        'digit': result.index,
        'confidence': result.confidence,
        'probabilities': result.probabilities
    }), 200


@app.route('/api/networks/<network_id>/example', methods=['GET'])
def get_example(network_id: str):
    """
    Pick a random test sample the network gets right (``outcome=success``,
    the default) or wrong (``outcome=failure``) and render it.
    """
    entry = _lookup(network_id)
    if entry is None:
        return error_response('Network not found', 404)

    outcome = request.args.get('outcome', 'success')
    if outcome not in ('success', 'failure'):
        return error_response("outcome must be 'success' or 'failure'", 400)
    if not test_data:
        return error_response('Test data not available', 503)

    want_correct = outcome == 'success'
    attempts = 100 if want_correct else 200

    for _ in range(attempts):
        index = int(np.random.randint(len(test_data)))
        label, image = test_data[index]

        try:
            result = recognize_image(entry['network'], image)
        except NeuroError as e:
            return error_response(str(e), 400)

        if (result.index == label) != want_correct:
            continue

        return jsonify({
            'network_id': network_id,
            'example_index': index,
            'predicted_digit': result.index,
            'actual_digit': label,
            'image_data': create_digit_image(image, result.index, label),
            'network_output': result.probabilities
        }), 200

    logger.info(f"No {outcome} example for {network_id} in {attempts} draws")
    return error_response(f'No {outcome} example found after {attempts} attempts', 404)


# ============================================================================
# TRAINING
# ============================================================================

@app.route('/api/networks/<network_id>/train', methods=['POST'])
def train_network(network_id: str):
    """
    Queue a training job; progress is streamed over SocketIO.

    Body (optional): ``{'epochs': 5, 'learning_rate': 0.01}``
    """
    if _lookup(network_id) is None:
        return error_response('Network not found', 404)
    if training_data is None:
        return error_response('Training data not available', 503)
    if _is_training(network_id):
        return error_response('Network is already being trained', 409)

    body = request.get_json(silent=True) or {}
    epochs = body.get('epochs', 5)
    learning_rate = body.get('learning_rate', 0.01)

    if not isinstance(epochs, int) or isinstance(epochs, bool) or epochs < 1:
        return error_response('epochs must be a positive integer', 400)
    if not _is_number(learning_rate) or learning_rate <= 0:
        return error_response('learning_rate must be a positive number', 400)

    job_id = str(uuid.uuid4())
    training_jobs[job_id] = {
        'network_id': network_id,
        'status': 'pending',
        'progress': 0,
        'epochs': epochs
    }
    logger.info(f"Job {job_id} queued for {network_id} ({epochs} epochs, lr {learning_rate})")

    socketio.start_background_task(
        train_network_task, network_id, job_id, epochs, learning_rate
    )

    return jsonify({
        'job_id': job_id,
        'network_id': network_id,
        'status': 'training_started'
    }), 202


def train_network_task(network_id: str, job_id: str, epochs: int,
                       learning_rate: float) -> None:
    """Greenlet body: train, store the result and report over SocketIO."""
    job = training_jobs[job_id]
    entry = active_networks[network_id]

    def report_epoch(stats: Dict[str, Any]) -> None:
        job['progress'] = 100 * stats['epoch'] / stats['total_epochs']
        socketio.emit('training_update', dict(
            stats, job_id=job_id, network_id=network_id, progress=job['progress']
        ))
        gevent.sleep(0)

    job['status'] = 'training'
    logger.info(f"Job {job_id} started")

    try:
        history = trainer.train(
            entry['network'],
            training_data,
            epochs,
            learning_rate,
            test_data=test_data,
            callback=report_epoch,
            yield_func=lambda: gevent.sleep(0)
        )
    except Exception as e:
        logger.exception(f"Job {job_id} failed: {e}")
        job.update(status='failed', error=str(e))
        socketio.emit('training_error', {
            'job_id': job_id,
            'network_id': network_id,
            'status': 'failed',
            'error': str(e)
        })
        return

    accuracy = history[-1].accuracy
    entry.update(trained=True, accuracy=accuracy)
    job.update(status='completed', accuracy=accuracy, progress=100)
    save_network(entry['network'], network_id, model_dir=settings.model_dir,
                 trained=True, accuracy=accuracy)

    logger.info(f"Job {job_id} finished with accuracy {accuracy:.2%}")
    socketio.emit('training_complete', {
        'job_id': job_id,
        'network_id': network_id,
        'status': 'completed',
        'accuracy': accuracy,
        'progress': 100
    })


@app.route('/api/training/<job_id>', methods=['GET'])
def get_training_status(job_id: str):
    job = training_jobs.get(job_id)
    if job is None:
        return error_response('Training job not found', 404)
    return jsonify(job), 200


# ============================================================================
# ENTRY POINT
# ============================================================================

def main() -> None:
    init_app()
    port = settings.port
    mode = 'production' if settings.is_production else 'development'
    logger.info(f"Serving on http://0.0.0.0:{port}/ ({mode})")

    try:
        socketio.run(
            app,
            host='0.0.0.0',
            port=port,
            debug=not settings.is_production,
            use_reloader=False,
            allow_unsafe_werkzeug=True
        )
    except OSError as e:
        if 'in use' in str(e):
            logger.error(f"Cannot bind port {port}: already in use")
            sys.exit(1)
        raise


if __name__ == '__main__':
    main()
