import logging
import sys
from datetime import datetime, timezone
from typing import Dict, Optional

from flask import Flask, jsonify, request
from flask_cors import CORS
from pymongo.database import Database
from werkzeug.middleware.proxy_fix import ProxyFix

from .auth import current_identity, token_required
from .config import load_config
from .errors import (
    BadRequest,
    Forbidden,
    NotFound,
    NotFoundOrNotOwned,
    StartupError,
    register_error_handlers,
)
from .identity import IdentityVerifier, build_verifier
from .logging_config import configure_logging
from .serializers import (
    insert_result_payload,
    parse_object_id,
    serialize_document,
    serialize_documents,
)
from .store import connect_store

PRODUCT_UPDATABLE_FIELDS = ("name", "price")


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def create_app(
    test_config: Optional[Dict] = None,
    store: Optional[Database] = None,
    verifier: Optional[IdentityVerifier] = None,
) -> Flask:
    """Create and configure the Flask application.

    ``store`` and ``verifier`` are built from the configuration when they are
    not supplied; tests pass an in-memory database and a local verifier.
    """
    app = Flask(__name__)
    app.config.from_mapping(load_config())
    if test_config:
        app.config.from_mapping(test_config)

    # Honor proxy headers when running behind a load balancer.
    trusted_proxy_hops = app.config["TRUSTED_PROXY_HOPS"]
    if trusted_proxy_hops:
        app.wsgi_app = ProxyFix(
            app.wsgi_app,
            x_for=trusted_proxy_hops,
            x_proto=trusted_proxy_hops,
            x_host=trusted_proxy_hops,
            x_port=trusted_proxy_hops,
        )

    CORS(
        app,
        supports_credentials=True,
        origins=app.config["CORS_ALLOWED_ORIGINS"],
        methods=["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"],
    )
    register_error_handlers(app)

    db = store if store is not None else connect_store(app)
    products = db["products"]
    bids = db["bids"]
    users = db["users"]

    if verifier is None:
        verifier = build_verifier(app)
    auth_required = token_required(verifier)

    # --- Helpers ---

    def read_json_object() -> Dict:
        payload = request.get_json(silent=True)
        if not isinstance(payload, dict):
            raise BadRequest("Request body must be a JSON object.")
        return payload

    # --- ROUTES ---

    @app.route("/", methods=["GET"])
    def index():
        return "Smart Deals Server Running!"

    @app.route("/health", methods=["GET"])
    def health():
        return {"status": "ok"}, 200

    # Users
    @app.route("/users", methods=["POST"])
    def create_user():
        user = read_json_object()
        email = user.get("email")
        if not isinstance(email, str) or not email.strip():
            raise BadRequest("An email address is required.")
        user.pop("_id", None)

        if users.find_one({"email": email}):
            return jsonify({"message": "Exists"})

        result = users.insert_one(user)
        app.logger.info("Registered user %s", email)
        return jsonify(insert_result_payload(result)), 201

    # Products
    @app.route("/products", methods=["GET"])
    def list_products():
        email = request.args.get("email")
        query = {"email": email} if email else {}
        return jsonify(serialize_documents(products.find(query)))

    @app.route("/latest-products", methods=["GET"])
    def latest_products():
        # No sort: store natural order, only the size is fixed.
        cursor = products.find().limit(app.config["LATEST_PRODUCTS_LIMIT"])
        return jsonify(serialize_documents(cursor))

    @app.route("/all-products", methods=["GET"])
    def all_products():
        # Ascending by creation time, while /latest-products applies no sort.
        cursor = (
            products.find()
            .sort("created_at", 1)
            .limit(app.config["ALL_PRODUCTS_LIMIT"])
        )
        return jsonify(serialize_documents(cursor))

    @app.route("/products/bids/<product_id>", methods=["GET"])
    def product_bids(product_id: str):
        cursor = bids.find({"product": product_id}).sort("bid_price", -1)
        return jsonify(serialize_documents(cursor))

    @app.route("/products/<product_id>", methods=["GET"])
    def get_product(product_id: str):
        object_id = parse_object_id(product_id, "product identifier")
        product_document = products.find_one({"_id": object_id})
        if not product_document:
            raise NotFound("Product not found")
        return jsonify(serialize_document(product_document))

    @app.route("/products", methods=["POST"])
    def create_product():
        product_document = read_json_object()
        product_document.pop("_id", None)
        product_document["created_at"] = utcnow()

        result = products.insert_one(product_document)
        return jsonify(insert_result_payload(result)), 201

    @app.route("/products/<product_id>", methods=["PATCH"])
    def update_product(product_id: str):
        object_id = parse_object_id(product_id, "product identifier")
        payload = read_json_object()
        updates = {
            field: payload[field] for field in PRODUCT_UPDATABLE_FIELDS if field in payload
        }
        if not updates:
            raise BadRequest("Provide a name or price to update.")

        result = products.update_one({"_id": object_id}, {"$set": updates})
        if result.matched_count == 0:
            raise NotFound("Product not found")
        return jsonify(
            {
                "acknowledged": result.acknowledged,
                "matchedCount": result.matched_count,
                "modifiedCount": result.modified_count,
            }
        )

    # Bids
    @app.route("/bids", methods=["GET"])
    @auth_required
    def list_bids():
        identity = current_identity()
        buyer_email = request.args.get("buyer_email")
        if buyer_email and buyer_email != identity.email:
            raise Forbidden()

        cursor = bids.find({"buyer_email": identity.email}).sort("bid_price", -1)
        return jsonify(serialize_documents(cursor))

    @app.route("/bids", methods=["POST"])
    @auth_required
    def create_bid():
        identity = current_identity()
        bid = read_json_object()
        bid.pop("_id", None)
        bid["buyer_email"] = identity.email
        bid["buyer_name"] = identity.display_name
        bid["created_at"] = utcnow()

        result = bids.insert_one(bid)
        return jsonify(insert_result_payload(result)), 201

    @app.route("/bids/<bid_id>", methods=["DELETE"])
    @auth_required
    def delete_bid(bid_id: str):
        identity = current_identity()
        object_id = parse_object_id(bid_id, "Bid ID")

        result = bids.delete_one({"_id": object_id, "buyer_email": identity.email})
        if result.deleted_count == 0:
            raise NotFoundOrNotOwned()

        app.logger.info("Bid %s deleted by %s", bid_id, identity.email)
        return jsonify(
            {"acknowledged": result.acknowledged, "deletedCount": result.deleted_count}
        )

    return app


def main() -> None:
    config = load_config()
    configure_logging(config["LOG_LEVEL"])
    try:
        app = create_app()
    except StartupError as exc:
        logging.getLogger(__name__).critical("CRITICAL: %s", exc)
        sys.exit(1)

    app.logger.info("Server listening at http://localhost:%s", app.config["PORT"])
    app.run(host="0.0.0.0", port=app.config["PORT"])


if __name__ == "__main__":
    main()
