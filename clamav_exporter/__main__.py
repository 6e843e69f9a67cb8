"""Development runner: ``python -m clamav_exporter``.

Don't run directly in prod, use a production grade wsgi server like
gunicorn: ``gunicorn -b :9328 clamav_exporter:app``.

"""
import logging

from flask.logging import default_handler

from . import app

# undo the gunicorn logging setup, there is no gunicorn here
app.logger.handlers = [default_handler]
app.logger.setLevel(logging.DEBUG)

host, _, port = app.config["LISTEN"].rpartition(":")
app.logger.info("Listening on %s", app.config["LISTEN"])
app.run(host=host or "0.0.0.0", port=int(port), debug=True)
