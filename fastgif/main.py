import logging
import sys
from typing import Optional

from flask import Flask

from fastgif.api.routes import api
from fastgif.config import Settings
from fastgif.logging_config import configure_logging


# ================================
# APP FACTORY
# ================================
def create_app(settings: Optional[Settings] = None) -> Flask:
    settings = settings or Settings.from_env()

    app = Flask(__name__)
    app.config["FASTGIF_SETTINGS"] = settings
    app.register_blueprint(api)
    return app


# ================================
# START
# ================================
def main() -> int:
    settings = Settings.from_env()
    configure_logging(settings.log_level)

    logging.info("Starting FastGIF server")
    app = create_app(settings)

    logging.info("Listening on http://%s:%s", settings.host, settings.port)
    try:
        app.run(host=settings.host, port=settings.port, threaded=True)
    except OSError as e:
        # Binding the port is the only fatal failure
        logging.error("Could not bind %s:%s: %s", settings.host, settings.port, e)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
