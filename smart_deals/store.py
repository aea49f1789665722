"""MongoDB access for the products, bids and users collections."""

from flask import Flask
from flask_pymongo import PyMongo
from pymongo.database import Database
from pymongo.errors import PyMongoError

from .errors import StartupError


def connect_store(app: Flask) -> Database:
    """Open the shared client for ``app`` and return its database.

    The client is created once per application and reused by every request;
    pymongo pools connections and is safe to share across threads.
    """
    mongo = PyMongo(
        app,
        serverSelectionTimeoutMS=app.config["MONGO_SERVER_SELECTION_TIMEOUT_MS"],
    )
    db = mongo.db
    if db is None:
        db = mongo.cx[app.config["MONGO_DBNAME"]]

    if app.config.get("VERIFY_STORE_ON_STARTUP", True):
        try:
            mongo.cx.admin.command("ping")
        except PyMongoError as exc:
            raise StartupError(
                "Could not reach MongoDB. Check the URI, network access and DB credentials."
            ) from exc
        app.logger.info("MongoDB connected (database %s)", db.name)

    return db
