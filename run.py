"""Development server for the SalonBook system of record."""
from __future__ import annotations

import logging
import os

from salonbook import create_app

app = create_app()


def main() -> None:
    logging.basicConfig(level=logging.INFO)
    app.logger.info(
        "Serving SalonBook on %s (cancellation window %sh, refunds to %s)",
        app.config["SQLALCHEMY_DATABASE_URI"],
        app.config["CANCELLATION_WINDOW_HOURS"],
        ", ".join(app.config["REFUND_ELIGIBLE_METHODS"]),
    )
    app.run(
        host=os.environ.get("HOST", "127.0.0.1"),
        port=int(os.environ.get("PORT", 5000)),
        debug=os.environ.get("FLASK_DEBUG", "0") in {"1", "true", "True"},
    )


if __name__ == "__main__":
    main()
