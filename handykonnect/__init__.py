from collections.abc import Mapping

from flask import Flask
from flask_cors import CORS

from .config import Config
from .extensions import db
from .realtime import init_change_stream
from .routes import register_routes


def create_app(config_object=None):
    app = Flask(__name__, instance_relative_config=True)
    app.config.from_object(Config)

    if isinstance(config_object, Mapping):
        app.config.update(config_object)
    elif config_object:
        app.config.from_object(config_object)
    else:
        app.config.from_envvar("APP_SETTINGS", silent=True)

    db.init_app(app)

    CORS(app,
         origins=app.config["CORS_ORIGINS"],
         allow_headers=["Content-Type", "Authorization"],
         methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"]
    )

    init_change_stream()
    register_routes(app)

    return app
