import json
import time
from collections import deque

from evac_timer import EvacTimer
from map_builder import BuildingMap

HAZARD_KINDS = ("fire", "smoke", "closed", "exit_blocked", "blocked_path")
DEFAULT_KIND = "fire"
PRESET_KIND = "fire"
AUDIT_LIMIT = 50


def edge_key(a, b):
    """Canonical key for the undirected edge a-b."""
    return (a, b) if a <= b else (b, a)


# ---------- Path finder ----------

def find_shortest_route(graph, exits, start, blocked_nodes=(), blocked_edges=()):
    """
    Shortest safe route (by hops) from start to any exit.

    `graph` maps node id -> ordered neighbour ids; ties between equally short
    routes go to whichever neighbour is listed first. Returns the list of node
    ids, or None when every exit is cut off.
    """
    if start in blocked_nodes:
        return None

    q = deque()
    q.append([start])
    visited = {start}

    while q:
        path = q.popleft()
        node = path[-1]

        if node in exits:
            return path

        for nei in graph.get(node, ()):
            if nei in visited:
                continue
            if nei in blocked_nodes:
                continue
            if edge_key(node, nei) in blocked_edges:
                continue

            visited.add(nei)
            q.append(path + [nei])

    return None  # no safe path


def find_alternative_routes(graph, exits, start, blocked_nodes=(), blocked_edges=(), count=3):
    """
    Up to `count` distinct routes, shortest first.

    Each further route comes from blocking, one at a time, an interior node of
    the route accepted just before it. Stops early once no single extra block
    produces an unseen route, so fewer than `count` routes is normal.
    """
    if count < 1:
        return []

    best = find_shortest_route(graph, exits, start, blocked_nodes, blocked_edges)
    if best is None:
        return []

    routes = [best]
    seen = {tuple(best)}

    while len(routes) < count:
        basis = routes[-1]
        found = None

        for node in basis[1:-1]:
            extra = set(blocked_nodes)
            extra.add(node)
            alt = find_shortest_route(graph, exits, start, extra, blocked_edges)
            if alt is not None and tuple(alt) not in seen:
                found = alt
                break

        if found is None:
            break
        routes.append(found)
        seen.add(tuple(found))

    return routes


# ---------- Hazard state ----------

class HazardState:
    """Blocked nodes (with their hazard kind) and blocked edges."""

    def __init__(self):
        self.blocked_nodes = set()
        self.blocked_edges = set()
        self.kinds = {}

    def block_node(self, node_id, kind):
        self.blocked_nodes.add(node_id)
        self.kinds[node_id] = kind

    def unblock_node(self, node_id):
        self.blocked_nodes.discard(node_id)
        return self.kinds.pop(node_id, None)

    def block_edge(self, a, b):
        self.blocked_edges.add(edge_key(a, b))

    def unblock_edge(self, a, b):
        self.blocked_edges.discard(edge_key(a, b))

    def is_blocked(self, node_id):
        return node_id in self.blocked_nodes

    def clear(self):
        self.blocked_nodes.clear()
        self.blocked_edges.clear()
        self.kinds.clear()

    def to_dict(self):
        return {
            "nodes": dict(self.kinds),
            "edges": [list(k) for k in sorted(self.blocked_edges)],
        }


# ---------- Controller ----------

class EvacuationEngine:
    def __init__(self, building: BuildingMap, timer=None):
        self.b = building
        self.hazards = HazardState()
        self.selected_kind = DEFAULT_KIND
        self.timer = timer or EvacTimer()
        self.audit = deque(maxlen=AUDIT_LIMIT)

        self.current_route = None
        self.evacuation_failed = False
        self.last_rejection = None
        self.recalculate()
        self.log(f"System initialized, {self.label(self.b.start)} is the evacuation start point", "ok")

    # ----- audit -----

    def log(self, message, level="info"):
        entry = {"time": time.strftime("%H:%M:%S"), "message": message, "level": level}
        self.audit.appendleft(entry)
        print(f"[Evac] {message}")
        return entry

    def label(self, node_id):
        return self.b.label(node_id)

    # ----- route -----

    def recalculate(self):
        self.current_route = find_shortest_route(
            self.b.adj, self.b.exits, self.b.start,
            self.hazards.blocked_nodes, self.hazards.blocked_edges,
        )
        self.evacuation_failed = self.current_route is None
        return self.current_route

    def alternatives(self, count=3):
        return find_alternative_routes(
            self.b.adj, self.b.exits, self.b.start,
            self.hazards.blocked_nodes, self.hazards.blocked_edges, count,
        )

    # ----- hazard operations -----

    def _reject(self, message):
        self.last_rejection = message
        self.log(message, "error")
        return False

    def _known(self, node_id):
        return isinstance(node_id, str) and node_id in self.b

    def apply_hazard(self, node_id, kind=None):
        kind = kind or self.selected_kind
        if kind not in HAZARD_KINDS:
            raise ValueError(f"Unknown hazard kind: {kind!r}")
        if node_id == self.b.start:
            return self._reject(
                f"Cannot mark {self.label(node_id)} as hazard, it is the evacuation start point."
            )
        if not self._known(node_id):
            return self._reject(f"Unknown node {node_id!r}, hazard not applied")

        self.hazards.block_node(node_id, kind)
        self.log(f"Hazard applied: {self.label(node_id)} [{kind.upper()}]", "warn")
        self.recalculate()
        return True

    def remove_hazard(self, node_id):
        if not self._known(node_id) or not self.hazards.is_blocked(node_id):
            return False
        kind = self.hazards.unblock_node(node_id)
        suffix = f" [{kind.upper()}]" if kind else ""
        self.log(f"Hazard cleared: {self.label(node_id)}{suffix}", "ok")
        self.recalculate()
        return True

    def toggle_hazard(self, node_id):
        if node_id == self.b.start:
            return self._reject(
                f"Cannot mark {self.label(node_id)} as hazard, it is the evacuation start point."
            )
        if self._known(node_id) and self.hazards.is_blocked(node_id):
            return self.remove_hazard(node_id)
        return self.apply_hazard(node_id, self.selected_kind)

    def select_hazard_kind(self, kind):
        if kind not in HAZARD_KINDS:
            raise ValueError(f"Unknown hazard kind: {kind!r}")
        self.selected_kind = kind

    def block_edge(self, a, b):
        if not self._known(a) or not self._known(b):
            return self._reject(f"Unknown node in passage {a!r} <-> {b!r}")
        if not self.b.has_edge(a, b):
            return self._reject(f"No connection between {self.label(a)} and {self.label(b)}")
        self.hazards.block_edge(a, b)
        self.log(f"Passage blocked: {self.label(a)} <-> {self.label(b)}", "warn")
        self.recalculate()
        return True

    def unblock_edge(self, a, b):
        if not self._known(a) or not self._known(b):
            return False
        if edge_key(a, b) not in self.hazards.blocked_edges:
            return False
        self.hazards.unblock_edge(a, b)
        self.log(f"Passage cleared: {self.label(a)} <-> {self.label(b)}", "ok")
        self.recalculate()
        return True

    def reset_all(self):
        self.hazards.clear()
        self.timer.reset()
        self.log("System reset, all hazards cleared", "info")
        self.recalculate()

    def apply_preset(self, name):
        preset = self.b.presets.get(name)
        if preset is None:
            return False
        self.reset_all()

        for n in preset["nodes"]:
            if n == self.b.start or n not in self.b:
                self.log(f"Preset {name!r} skips node {n!r}", "warn")
                continue
            self.hazards.block_node(n, PRESET_KIND)
        for a, b in preset["edges"]:
            self.hazards.block_edge(a, b)

        self.log(f'Preset loaded: "{name}" - {preset["description"]}', "info")
        self.recalculate()
        return True

    # ----- presentation contract -----

    def node_status(self, node_id):
        if node_id == self.b.start:
            return "start"
        is_exit = node_id in self.b.exits
        if is_exit and self.hazards.is_blocked(node_id):
            return "exit-blocked"
        if is_exit:
            return "exit"
        if self.hazards.is_blocked(node_id):
            return "hazard"
        if self.current_route and node_id in self.current_route:
            return "path"
        return "safe"

    def _describe(self, route):
        return [
            {
                "id": nid,
                "label": self.label(nid),
                "floor": self.b.floor_label(nid),
                "type": self.b.nodes.get(nid, {}).get("type"),
            }
            for nid in route
        ]

    def route_summary(self):
        if self.evacuation_failed:
            return {
                "found": False,
                "message": "FAILED",
                "level": "danger",
                "detail": (
                    f"No safe exit available from {self.label(self.b.start)}. "
                    "All viable routes are blocked by hazards."
                ),
            }

        route = self.current_route
        exit_label = self.label(route[-1])
        hops = len(route) - 1
        return {
            "found": True,
            "message": f"EVACUATE -> {exit_label}",
            "level": "safe",
            "hops": hops,
            "exit": route[-1],
            "exit_label": exit_label,
            "steps": self._describe(route),
        }

    def snapshot(self, alt_count=3):
        alts = self.alternatives(alt_count)
        floors = []
        for code in self.b.floor_order():
            floors.append({
                "code": code,
                "label": self.b.floors[code]["label"],
                "nodes": [
                    {"id": nid, "label": self.label(nid), "status": self.node_status(nid),
                     "hazard": self.hazards.kinds.get(nid)}
                    for nid in self.b.nodes_on_floor(code)
                ],
            })

        return {
            "start": self.b.start,
            "route": self.current_route,
            "evacuation_failed": self.evacuation_failed,
            "summary": self.route_summary(),
            "alternatives": [
                {"route": alt, "labels": [self.label(n) for n in alt], "exit_label": self.label(alt[-1])}
                for alt in alts[1:]
            ],
            "hazards": self.hazards.to_dict(),
            "selected_kind": self.selected_kind,
            "floors": floors,
            "timer": self.timer.to_dict(),
        }


if __name__ == "__main__":
    bm = BuildingMap()
    eng = EvacuationEngine(bm)
    eng.apply_preset("Exit A Blocked")
    print(json.dumps(eng.snapshot(), indent=2))
