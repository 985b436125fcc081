# server.py
#
# SafePath Evac server:
# - Serves the evacuation planner UI from static/
# - Holds one EvacuationEngine for the loaded building map
# - Exposes hazard / preset / timer operations as JSON endpoints
# - Every request that touches the engine holds ENGINE_LOCK

import os
import threading
from flask import Flask, send_from_directory, jsonify, request
from flask_cors import CORS

from engine import EvacuationEngine, find_shortest_route
from map_builder import BuildingMap, MAP_PATH

STATIC_DIR = os.path.join(os.path.dirname(os.path.abspath(__file__)), "static")
HOST = "0.0.0.0"
PORT = 8000
ALT_ROUTES = 3


def create_app(map_path=MAP_PATH, building=None):
    app = Flask(__name__, static_folder=STATIC_DIR)
    CORS(app)

    building = building or BuildingMap(map_path)
    engine = EvacuationEngine(building)
    lock = threading.Lock()

    app.config["ENGINE"] = engine
    app.config["ENGINE_LOCK"] = lock

    def state():
        return jsonify(engine.snapshot(ALT_ROUTES))

    def rejected(status):
        return jsonify({"error": engine.last_rejection or "Operation rejected"}), status

    def json_object():
        """Request body as a dict; None when a body was sent that is not a JSON object."""
        payload = request.get_json(silent=True)
        if payload is None and not request.get_data():
            return {}
        return payload if isinstance(payload, dict) else None

    def not_an_object():
        return jsonify({"error": "Expected a JSON object"}), 400

    @app.route("/")
    def index():
        return send_from_directory(STATIC_DIR, "index.html")

    @app.route("/app.js")
    def app_js():
        return send_from_directory(STATIC_DIR, "app.js")

    @app.route("/api/building", methods=["GET"])
    def api_building():
        data = building.to_dict()
        data["summary"] = building.summary()
        return jsonify(data)

    @app.route("/api/state", methods=["GET"])
    def api_state():
        with lock:
            return state()

    @app.route("/api/hazards/<node_id>", methods=["POST"])
    def api_apply_hazard(node_id):
        payload = json_object()
        if payload is None:
            return not_an_object()
        with lock:
            try:
                ok = engine.apply_hazard(node_id, payload.get("kind"))
            except ValueError as e:
                return jsonify({"error": str(e)}), 400
            if not ok:
                return rejected(404 if node_id not in building else 409)
            return state()

    @app.route("/api/hazards/<node_id>", methods=["DELETE"])
    def api_remove_hazard(node_id):
        with lock:
            engine.remove_hazard(node_id)
            return state()

    @app.route("/api/hazards/<node_id>/toggle", methods=["POST"])
    def api_toggle_hazard(node_id):
        with lock:
            if not engine.toggle_hazard(node_id):
                return rejected(404 if node_id not in building else 409)
            return state()

    @app.route("/api/edges", methods=["POST", "DELETE"])
    def api_edges():
        payload = json_object()
        if payload is None:
            return not_an_object()
        a, b = payload.get("a"), payload.get("b")
        if not isinstance(a, str) or not isinstance(b, str) or not a or not b:
            return jsonify({"error": "Both 'a' and 'b' are required node ids"}), 400

        with lock:
            if request.method == "DELETE":
                engine.unblock_edge(a, b)
            elif not engine.block_edge(a, b):
                return rejected(404)
            return state()

    @app.route("/api/hazard_kind", methods=["POST"])
    def api_hazard_kind():
        payload = json_object()
        if payload is None:
            return not_an_object()
        with lock:
            try:
                engine.select_hazard_kind(payload.get("kind"))
            except ValueError as e:
                return jsonify({"error": str(e)}), 400
            return state()

    @app.route("/api/reset", methods=["POST"])
    def api_reset():
        with lock:
            engine.reset_all()
            return state()

    @app.route("/api/presets", methods=["GET"])
    def api_presets():
        return jsonify({
            name: {"description": p["description"], "nodes": p["nodes"],
                   "edges": [list(e) for e in p["edges"]]}
            for name, p in building.presets.items()
        })

    @app.route("/api/presets/<name>", methods=["POST"])
    def api_apply_preset(name):
        with lock:
            if not engine.apply_preset(name):
                return jsonify({"error": f"Unknown preset: {name}"}), 404
            return state()

    @app.route("/api/timer/<action>", methods=["POST"])
    def api_timer(action):
        actions = {
            "start": engine.timer.start,
            "stop": engine.timer.stop,
            "toggle": engine.timer.toggle,
            "reset": engine.timer.reset,
        }
        if action not in actions:
            return jsonify({"error": f"Unknown timer action: {action}"}), 404
        with lock:
            actions[action]()
            return jsonify(engine.timer.to_dict())

    @app.route("/api/audit", methods=["GET"])
    def api_audit():
        with lock:
            return jsonify(list(engine.audit))

    @app.route("/api/builder/route", methods=["POST"])
    def api_builder_route():
        """
        Free-form builder: {"nodes": {id: {label, type}}, "edges": [[a, b], ...]}.
        Computes the hazard-free route from the first start/control node.
        """
        payload = json_object()
        if payload is None:
            return not_an_object()
        try:
            bm = BuildingMap.from_parts(payload.get("nodes") or {}, payload.get("edges") or [])
        except (ValueError, TypeError, AttributeError) as e:
            return jsonify({"ok": False, "error": str(e)}), 400

        path = find_shortest_route(bm.adj, bm.exits, bm.start)
        if path is None:
            return jsonify({"ok": False, "route": None,
                            "message": "No path from Start to any Exit"}), 200
        return jsonify({"ok": True, "route": path,
                        "labels": [bm.label(n) for n in path]}), 200

    @app.route("/<path:path>")
    def static_proxy(path):
        return send_from_directory(STATIC_DIR, path)

    return app


app = create_app()


if __name__ == "__main__":
    app.run(host=HOST, port=PORT, debug=True)
