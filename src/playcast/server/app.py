"""Flask REST API for PlayCast.

Exposes classification, resolution, search, and the playback queue to the
mobile and web clients.
"""

import asyncio
import logging
import os

import httpx
from flask import Flask, jsonify, request

from playcast.config import Config
from playcast.server.database import Database
from playcast.server.queue_manager import PlaybackQueue
from playcast.server.queue_store import QueueStore
from playcast.server.sources import (
    CollectionResult,
    ErrorReason,
    LinkKind,
    MemberReference,
    Provider,
    ResolutionError,
    ResolutionFacade,
)

logger = logging.getLogger(__name__)

ERROR_STATUS = {
    ErrorReason.UNRECOGNIZED_INPUT: 400,
    ErrorReason.NOT_FOUND: 404,
    ErrorReason.TIMEOUT: 504,
}


class BadRequestBody(ValueError):
    """The request body is not shaped the way the endpoint expects."""


def _json_object() -> dict:
    """The request's JSON body, which must be an object when present."""
    data = request.get_json(silent=True)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise BadRequestBody("request body must be a JSON object")
    return data


def _string_field(data: dict, name: str) -> str:
    value = data.get(name) or ""
    if not isinstance(value, str):
        raise BadRequestBody(f"{name} must be a string")
    return value


def _error_response(err: ResolutionError):
    return jsonify(err.to_dict()), ERROR_STATUS.get(err.reason, 502)


def _outcome_response(outcome):
    """JSON for a facade outcome: a stream, a collection, or an error."""
    if isinstance(outcome, ResolutionError):
        return _error_response(outcome)
    body = outcome.to_dict()
    body["type"] = "collection" if isinstance(outcome, CollectionResult) else "stream"
    return jsonify(body)


def _get_version() -> str:
    from playcast.__about__ import __version__
    return __version__


def create_app(
    config: Config | None = None,
    facade: ResolutionFacade | None = None,
    transport: httpx.AsyncBaseTransport | None = None,
) -> Flask:
    """Create and configure the Flask application.

    Args:
        config: PlayCast configuration. Uses defaults if None.
        facade: Prebuilt resolution facade (tests inject one). Built from
            config if None.
        transport: httpx transport for the default facade's upstream calls.
    """
    if config is None:
        config = Config()

    os.makedirs(config.server.data_dir, exist_ok=True)

    app = Flask(__name__)
    app.config["PLAYCAST"] = config

    db = Database(config.server.db_file)
    queue = PlaybackQueue(store=QueueStore(db))
    if facade is None:
        facade = ResolutionFacade.from_config(config, transport=transport)

    # Close DB connections after each request to prevent fd leaks
    @app.teardown_appcontext
    def close_db(exc):
        db.close()

    @app.errorhandler(BadRequestBody)
    def handle_bad_body(e):
        return jsonify({"error": str(e)}), 400

    @app.errorhandler(Exception)
    def handle_exception(e):
        from werkzeug.exceptions import HTTPException
        if isinstance(e, HTTPException):
            return e
        logger.exception("Unhandled error: %s", e)
        return jsonify({"error": str(e)}), 500

    @app.after_request
    def add_cors_headers(response):
        response.headers["Access-Control-Allow-Origin"] = "*"
        response.headers["Access-Control-Allow-Methods"] = "GET, POST, DELETE, OPTIONS"
        response.headers["Access-Control-Allow-Headers"] = "Content-Type"
        return response

    app.db = db
    app.queue = queue
    app.facade = facade

    # --- Health ---

    @app.route("/api/health")
    def health():
        return jsonify({
            "status": "ok",
            "version": _get_version(),
            "queue_total": len(queue),
            "mirror_families": list(facade.mirrors()),
        })

    # --- Resolution ---

    @app.route("/api/classify", methods=["POST"])
    def classify():
        data = _json_object()
        text = data.get("input", "")
        if not isinstance(text, str):
            return jsonify({"error": "input must be a string"}), 400
        return jsonify(facade.classify(text).to_dict())

    @app.route("/api/resolve", methods=["POST"])
    def resolve():
        data = _json_object()
        text = data.get("input", "")
        if not isinstance(text, str):
            return jsonify({"error": "input must be a string"}), 400
        return _outcome_response(asyncio.run(facade.resolve_from_input(text)))

    @app.route("/api/resolve/member", methods=["POST"])
    def resolve_member():
        data = _json_object()
        url = data.get("url", "")
        if not isinstance(url, str) or not url.strip():
            return jsonify({"error": "url required"}), 400
        duration = data.get("duration_seconds") or 0
        if isinstance(duration, bool) or not isinstance(duration, (int, float)):
            return jsonify({"error": "duration_seconds must be a number"}), 400
        kind = data.get("kind")
        if kind is not None:
            try:
                kind = LinkKind(kind)
            except ValueError:
                return jsonify({"error": f"unknown kind: {kind}"}), 400
        member = MemberReference(
            id=str(data.get("id") or url),
            url=url.strip(),
            title=_string_field(data, "title"),
            artist=_string_field(data, "artist"),
            duration_seconds=int(duration),
            thumbnail=_string_field(data, "thumbnail"),
            group=_string_field(data, "group"),
            kind=kind,
        )
        return _outcome_response(asyncio.run(facade.resolve_member(member)))

    @app.route("/api/search")
    def search():
        query = request.args.get("q", "").strip()
        if not query:
            return jsonify({"error": "q required"}), 400
        provider_name = request.args.get("provider", "")
        try:
            provider = Provider(provider_name) if provider_name else None
        except ValueError:
            return jsonify({"error": f"unknown provider: {provider_name}"}), 400
        limit = request.args.get("limit", type=int)
        results = asyncio.run(facade.search(query, provider=provider, limit=limit))
        if isinstance(results, ResolutionError):
            return _error_response(results)
        return jsonify({"query": query, "results": [m.to_dict() for m in results]})

    @app.route("/api/mirrors")
    def mirrors():
        return jsonify(facade.mirrors())

    # --- Queue ---

    @app.route("/api/queue")
    def queue_list():
        return jsonify(queue.to_dict())

    @app.route("/api/queue/add", methods=["POST"])
    def queue_add():
        data = _json_object()
        if isinstance(data.get("items"), list):
            added = queue.insert_many([p for p in data["items"] if isinstance(p, dict)])
            return jsonify({"added": added, "length": len(queue)}), 201 if added else 200

        payload = data.get("payload", data)
        if not isinstance(payload, dict) or not (payload.get("id") or payload.get("url")):
            return jsonify({"error": "payload with id or url required"}), 400
        index = data.get("index")
        if index is not None and not isinstance(index, int):
            return jsonify({"error": "index must be an integer"}), 400
        added = queue.insert_at(payload, index)
        return jsonify({"added": added, "length": len(queue)}), 201 if added else 200

    @app.route("/api/queue/<path:payload_id>", methods=["DELETE"])
    def queue_remove(payload_id):
        if not queue.remove(payload_id):
            return jsonify({"error": "not in queue"}), 404
        return jsonify({"ok": True})

    @app.route("/api/queue/move", methods=["POST"])
    def queue_move():
        data = _json_object()
        payload_id = data.get("payload_id")
        if payload_id is not None:
            where = data.get("to")
            if where == "top":
                moved = queue.move_to_top(str(payload_id))
            elif where == "bottom":
                moved = queue.move_to_bottom(str(payload_id))
            else:
                return jsonify({"error": "to must be 'top' or 'bottom'"}), 400
        else:
            src, dst = data.get("from"), data.get("to")
            if not isinstance(src, int) or not isinstance(dst, int):
                return jsonify({"error": "from and to must be integers"}), 400
            moved = queue.move(src, dst)
        return jsonify({"moved": moved, **queue.to_dict()})

    @app.route("/api/queue/shuffle", methods=["POST"])
    def queue_shuffle():
        queue.shuffle()
        return jsonify(queue.to_dict())

    @app.route("/api/queue/clear", methods=["POST"])
    def queue_clear():
        queue.clear()
        return jsonify({"ok": True})

    def _pointer_response(item):
        if item is None:
            return jsonify({"item": None, "current_index": queue.current_index, "message": "nothing to play"})
        return jsonify({"item": item.to_dict(), "current_index": queue.current_index})

    @app.route("/api/queue/next", methods=["POST"])
    def queue_next():
        return _pointer_response(queue.advance())

    @app.route("/api/queue/previous", methods=["POST"])
    def queue_previous():
        return _pointer_response(queue.retreat())

    @app.route("/api/queue/current", methods=["GET", "POST"])
    def queue_current():
        if request.method == "POST":
            data = _json_object()
            index = data.get("index")
            if not isinstance(index, int):
                return jsonify({"error": "index must be an integer"}), 400
            return _pointer_response(queue.set_current(index))
        return _pointer_response(queue.current())

    return app
