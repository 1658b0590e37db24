from flask import Flask
from flask_cors import CORS

from .config import Config
from .extensions import db
from .routes import bp


def create_app(config_object=None):
    app = Flask(__name__, instance_relative_config=True)

    app.config.from_object(config_object or Config)
    if config_object is None:
        app.config.from_envvar("APP_SETTINGS", silent=True)

    db.init_app(app)

    # Allow the booking frontend to talk to the API
    CORS(app,
         origins=["*"],
         supports_credentials=True,
         allow_headers=["Content-Type", "Authorization"],
         methods=["GET", "POST", "PATCH", "DELETE", "OPTIONS"]
    )

    app.register_blueprint(bp)

    with app.app_context():
        db.create_all()

    return app
