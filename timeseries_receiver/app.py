"""
Timeseries Binary Receiver
==========================

Servizio Flask che riceve metriche nel formato binario timeseries
(record con lunghezza prefissata, compressi con Snappy framing) e le
inoltra al consumer configurato (InfluxDB di default).

Endpoint disponibili:
- POST /v1/metrics/<...> - Riceve un payload binario compresso
- GET  /health           - Health check con stato del consumer
- GET  /                 - Info API

Uso:
1. Avvia InfluxDB: docker-compose up -d
2. Installa il pacchetto: pip install -e .
3. Esegui: python -m timeseries_receiver.app
   (in produzione: gunicorn -c gunicorn.conf.py 'timeseries_receiver.app:create_app()')
"""

import io
import logging
import os
from datetime import datetime

from flask import Flask, abort, jsonify, request

from timeseries_receiver import __version__
from timeseries_receiver.compression import PayloadError, SnappyFramedReader
from timeseries_receiver.config import ReceiverConfig, load_config
from timeseries_receiver.consumer import InfluxDBConsumer, MetricsConsumer
from timeseries_receiver.decoder import DecodeError, decode_samples
from timeseries_receiver.metrics import assemble_metrics

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'

logger = logging.getLogger(__name__)

# Parametri restituiti all'agent che invia le metriche
ACK_FREQUENCY_SECONDS = 60
ACK_MAX_BATCH_SIZE = 1000
ACK_MAX_LABEL_FIELD_LENGTH = 512


def configure_logging(level: str = 'INFO') -> None:
    logging.basicConfig(level=getattr(logging, level, logging.INFO), format=LOG_FORMAT)


def _dump_payload(dump_dir, data: bytes) -> None:
    # Salva il payload grezzo in un file per l'analisi con debug_parser
    filename = os.path.join(
        dump_dir, f"payload_error_{datetime.now().strftime('%Y%m%d_%H%M%S_%f')}.bin"
    )
    try:
        with open(filename, "wb") as f:
            f.write(data)
    except OSError as e:
        logger.error(f"Could not save failed payload to {filename}: {e}")
        return
    logger.info(f"Payload grezzo salvato in: {filename}")


def create_app(config: ReceiverConfig = None, consumer: MetricsConsumer = None) -> Flask:
    config = config or load_config()
    configure_logging(config.log_level)
    if consumer is None:
        consumer = InfluxDBConsumer.from_config(config)

    app = Flask(__name__)
    app.config['RECEIVER'] = config
    app.extensions['metrics_consumer'] = consumer

    @app.route('/v1/metrics', methods=['POST'])
    def metrics_prefix_without_slash():
        # Solo i path sotto /v1/metrics/ sono accettati, niente redirect
        abort(404)

    @app.route('/v1/metrics/', methods=['POST'], defaults={'subpath': ''})
    @app.route('/v1/metrics/<path:subpath>', methods=['POST'])
    def receive_metrics(subpath):
        """
        Endpoint principale: decomprime, decodifica e inoltra le metriche.
        Il body viene letto come stream, un chunk Snappy alla volta.
        Qualsiasi errore di decodifica rifiuta l'intera richiesta.
        """
        body = None
        if config.payload_dump_dir:
            # Il body compresso serve intero per poterlo salvare
            body = request.get_data()
            stream = io.BytesIO(body)
        else:
            stream = request.stream

        try:
            samples = decode_samples(SnappyFramedReader(stream))
        except (PayloadError, DecodeError) as e:
            cause = getattr(e, 'cause', 'invalid-compression')
            logger.warning(f"failed to decode timeseries payload ({cause}): {e}")
            if body is not None:
                _dump_payload(config.payload_dump_dir, body)
            return "invalid timeseries payload\n", 400

        metrics = assemble_metrics(samples)
        if not metrics.is_empty():
            try:
                consumer.consume_metrics(metrics)
            except Exception as e:
                logger.error(f"failed to consume metrics: {e}", exc_info=True)
                return "failed to ingest metrics\n", 500
            logger.debug(
                f"Accepted {metrics.data_point_count()} data points "
                f"in {len(metrics.series)} series from /v1/metrics/{subpath}"
            )

        return jsonify({
            'success': True,
            'frequency': ACK_FREQUENCY_SECONDS,
            'max_metrics': ACK_MAX_BATCH_SIZE,
            'max_lfm': ACK_MAX_LABEL_FIELD_LENGTH,
        }), 202

    @app.route('/health', methods=['GET'])
    def health_check():
        """Health check del servizio e del consumer a valle."""
        return jsonify({
            'status': 'healthy',
            'timestamp': datetime.now().isoformat(),
            'consumer': type(consumer).__name__,
            'consumer_status': consumer.health(),
            'endpoint': config.endpoint,
        })

    @app.route('/', methods=['GET'])
    def index():
        return jsonify({
            'service': 'Timeseries Binary Receiver',
            'version': __version__,
            'endpoints': {
                'receive': '/v1/metrics/<source> - POST payload binario compresso Snappy',
                'health': '/health - Stato del servizio e del consumer',
            },
            'status': 'running',
        })

    return app


def main():
    config = load_config()
    app = create_app(config)

    print("=" * 60)
    print("TIMESERIES BINARY RECEIVER")
    print("=" * 60)
    print(f"Endpoint: http://{config.endpoint}/v1/metrics/")
    print(f"InfluxDB: {config.influxdb_url} (bucket {config.influxdb_bucket})")
    print("=" * 60)

    logger.info(f"timeseries receiver listening on {config.endpoint}")
    app.run(host=config.host, port=config.port)


if __name__ == '__main__':
    main()
