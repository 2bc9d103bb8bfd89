# sarest_init.py: application setup, settings, logging and sql statistics
import logging
import os
import sys
import time
from typing import Any, Dict
import flask.app
from flask import Flask, g, has_app_context
from flask_sqlalchemy import SQLAlchemy
from sqlalchemy import event
from sqlalchemy.engine import Engine
import sarest


class SAREST:
    """Attach sarest to a Flask application

    The settings below are class attributes, they can be overridden with keyword arguments
    to the constructor or in the app config (see sarest.config.get_config)

    :param app: Flask application
    :param app_db: the flask_sqlalchemy SQLAlchemy instance holding the models
    """

    MAX_PAGE_LIMIT = 100000
    DEFAULT_PAGE_LIMIT = 250
    LOGLEVEL = logging.WARNING
    # relationship selector used when the client doesn't send a "with" query argument
    DEFAULT_WITH = "none"
    # batch hasMany lookups into a single query per relationship
    FAST_HAS_MANY = True
    # pluck belongsTo records from the primary query instead of querying them one by one
    FAST_BELONGS_TO = True
    # add database query count and timing to the response meta
    DEBUG_APP = False

    def __init__(self, app: flask.app.Flask, *args, **kwargs) -> None:
        self.app = app
        self.db = None
        if app is not None:
            self.init_app(app, *args, **kwargs)

    def init_app(self, app: flask.app.Flask, app_db: SQLAlchemy = None, **kwargs) -> None:
        """
        :param app: Flask application
        :param app_db: SQLAlchemy instance, defaults to the one registered on the app
        :param kwargs: setting overrides
        """
        if not isinstance(app, Flask):  # pragma: no cover
            raise TypeError("sarest requires a Flask app")

        self.db = app_db if app_db is not None else app.extensions["sqlalchemy"]
        sarest.DB = self.db

        if app.config.get("DEBUG", False):
            log.setLevel(logging.DEBUG)

        # keyword arguments first, the app config has the final say
        settings = dict(kwargs)
        settings.update(app.config)
        for name, value in settings.items():
            setattr(SAREST, name, value)

        install_query_stats()
        app.before_request(reset_query_stats)

        # pylint: disable=unused-argument,unused-variable
        @app.teardown_appcontext
        def remove_session(exception=None):
            self.db.session.remove()

        log.debug(f"sarest initialized for {app.name}")

    @staticmethod
    def init_logging(loglevel: int = logging.WARNING) -> logging.Logger:
        """
        :param loglevel: level used when the "sarest" logger hasn't been configured yet
        :return: the "sarest" logger, writing to stderr
        """
        logger = logging.getLogger("sarest")
        if logger.level == logging.NOTSET:
            handler = logging.StreamHandler(sys.stderr)
            handler.setFormatter(logging.Formatter("[%(asctime)s] %(levelname)s: %(message)s"))
            logger.addHandler(handler)
            logger.setLevel(loglevel)
        return logger


def _before_cursor_execute(conn, cursor, statement, parameters, context, executemany):
    conn.info.setdefault("sarest_query_start", []).append(time.perf_counter())


def _after_cursor_execute(conn, cursor, statement, parameters, context, executemany):
    started = conn.info["sarest_query_start"].pop(-1)
    if not has_app_context():
        return
    g.sarest_query_count = g.get("sarest_query_count", 0) + 1
    g.sarest_query_timer = g.get("sarest_query_timer", 0.0) + (time.perf_counter() - started) * 1000


def install_query_stats() -> None:
    """
    Count the executed sql statements and their duration, the values are stored in `flask.g`
    """
    if not event.contains(Engine, "before_cursor_execute", _before_cursor_execute):
        event.listen(Engine, "before_cursor_execute", _before_cursor_execute)
        event.listen(Engine, "after_cursor_execute", _after_cursor_execute)


def reset_query_stats() -> None:
    # statistics are reported per request
    g.sarest_query_count = 0
    g.sarest_query_timer = 0.0


def query_stats() -> Dict[str, Any]:
    """
    :return: the query count and timer of the current request, empty when there's no app context
    """
    if not has_app_context():
        return {}
    return {"count": g.get("sarest_query_count", 0), "timer": g.get("sarest_query_timer", 0.0)}


DB = SQLAlchemy()

try:
    LOGLEVEL = int(os.getenv("DEBUG", logging.WARNING))
except ValueError:  # pragma: no cover
    print(f'Invalid loglevel in the DEBUG environment variable: "{os.getenv("DEBUG")}"')
    LOGLEVEL = logging.INFO

log = SAREST.init_logging(LOGLEVEL)
