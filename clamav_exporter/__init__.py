"""ClamAV exporter exposes the health of ClamAV as Prometheus metrics.

Two probes are available, each enabled separately:

 - clamd: talks to the ClamAV daemon over TCP or Unix domain socket,
   reads its version and stats and scans the EICAR test string.
 - icap: sends the EICAR test string and a harmless message through an
   ICAP service (squidclamav, c-icap) and checks the verdicts.

Every scrape of /metrics runs the enabled probes from scratch.

Configuration: all configuration is managed through environment
variables.  All environment variables starting with "CLAMAV_" prefix
are loaded into the application.

No authentication of any type is implemented whatsoever: be sure that
your exporter is adequately protected.

The following variables are accepted:

 - CLAMAV_CONFIG_FILE : JSON config file, loaded before the other
    variables (see clamav_exporter.config for its layout)
 - CLAMAV_CLAMD_ENABLE : enable the clamd probe
 - CLAMAV_CLAMD_URL : clamd address, tcp://host:port or unix:///path
 - CLAMAV_ICAP_ENABLE : enable the icap probe
 - CLAMAV_ICAP_HOST : ICAP server host; also CLAMAV_ICAP_PORT
 - CLAMAV_ICAP_PORT : use with CLAMAV_ICAP_HOST
 - CLAMAV_ICAP_SERVICE : ICAP service path and query

"""
import logging
import os

from flask import Flask, jsonify
from flask_swagger import swagger
from prometheus_client import CollectorRegistry, CONTENT_TYPE_LATEST, \
    generate_latest
from werkzeug.exceptions import HTTPException

from .clamd import Clamd
from .collectors import ClamdCollector, IcapCollector
from .config import DEFAULTS, as_bool, load_json

##
# Init app and config
##

app = Flask(__name__)

app.config.from_mapping(DEFAULTS)

# the config file comes first, so that env variables can override it
config_file = os.environ.get("CLAMAV_CONFIG_FILE")
if config_file:
    app.config.from_file(config_file, load=load_json)

# load all env starting with CLAMAV_ and make them available in
# app.config without CLAMAV_
app.config.from_prefixed_env("CLAMAV")

# fix gunicorn logging
if __name__ != '__main__':
    gunicorn_logger = logging.getLogger('gunicorn.error')
    app.logger.handlers = gunicorn_logger.handlers[:]
    app.logger.setLevel(gunicorn_logger.level)
    app.logger.propagate = False

##
# Metrics
##


@app.route("/metrics", methods=["GET"])
def metrics():
    """Run the enabled probes and expose the results.
    ---
    tags:
      - metrics
    responses:
      200:
        description: Metrics in Prometheus text exposition format
        content: text/plain
    """
    # a fresh registry each time, nothing is kept between scrapes
    registry = CollectorRegistry()
    for collector in enabled_collectors():
        registry.register(collector)

    return generate_latest(registry), 200, {
        "Content-Type": CONTENT_TYPE_LATEST,
    }


##
# API
##


@app.route("/api/v1/doc")
def api_doc():
    """OpenAPI spec of the v1 API.
    """
    swag = swagger(app)
    swag['info']['version'] = "1.0"
    swag['info']['title'] = "ClamAV exporter"
    swag['info']['description'] = \
        "Prometheus metrics about ClamAV daemon and ICAP service health"
    return jsonify(swag)


@app.route("/health", methods=["GET"])
def health():
    """Check that clamd answers to ping, if the clamd probe is enabled.
    ---
    tags:
      - status
    responses:
      200:
        description: Healthy
        content: application/json
        schema:
          type: object
          properties:
            status:
              type: string
              description: Status of the check
              example: OK
      503:
        description: clamd did not answer
        content: application/json
        schema:
          type: object
          properties:
            status:
              type: string
              example: KO
            error:
              type: string
              description: Error occurred
    """
    if not config_bool("CLAMD_ENABLE"):
        return {"status": "OK"}, 200

    app.logger.debug("Pinging clamd...")
    try:
        Clamd(app.config["CLAMD_URL"]).ping()
    except Exception as e:
        app.logger.warning("Unable to ping clamd: %s", str(e))
        return {"status": "KO", "error": str(e)}, 503

    return {"status": "OK"}, 200


##
# Error handlers
##


@app.errorhandler(HTTPException)
def handle_http_exception(e):
    """Handle an HTTP exception and return JSON.
    """
    str_e = str(e)
    if e.code not in [404, 405, 415]:
        # don't pollute logs, these statuses does not concern us
        app.logger.exception("HTTP exception: %s", str_e)
    return {"error": str_e}, e.code


@app.errorhandler(Exception)
def handle_exception(e):
    """Handle an generic exception and return JSON.
    """
    str_e = str(e)
    app.logger.exception("Generic exception: %s", str_e)
    return {"error": str_e}, 500


##
# Helpers
##


def enabled_collectors():
    """Build the collectors enabled in app config.
    """
    collectors = []
    if config_bool("CLAMD_ENABLE"):
        collectors.append(ClamdCollector(app.config["CLAMD_URL"]))
    if config_bool("ICAP_ENABLE"):
        collectors.append(IcapCollector(
            host=app.config["ICAP_HOST"],
            port=app.config["ICAP_PORT"],
            service=app.config["ICAP_SERVICE"],
        ))
    return collectors


def config_bool(env_name: str) -> bool:
    """Given a config var name, try to parse as boolean.
    """
    return as_bool(app.config.get(env_name, False))

