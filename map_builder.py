import os
import json
import networkx as nx

BASE_DIR = os.path.dirname(os.path.abspath(__file__))
MAP_PATH = os.path.join(BASE_DIR, "building_map.json")

NODE_TYPES = ("room", "corridor", "stair", "control", "exit", "start")
BUILDER_START_TYPES = ("start", "control")


class MapError(ValueError):
    """Raised when a building dataset cannot be turned into a usable map."""


# ---------- Adjacency helpers ----------

def symmetrize(adjacency):
    """
    Make an adjacency table undirected without disturbing listed order.

    Each node keeps its own neighbours first, in the order they were written.
    Reverse links that were only written on the other side are appended after
    them, in the order they are discovered.
    """
    adj = {}
    for node, neighbours in adjacency.items():
        row = adj.setdefault(node, [])
        for nei in neighbours:
            if nei != node and nei not in row:
                row.append(nei)

    for node, neighbours in list(adj.items()):
        for nei in neighbours:
            back = adj.setdefault(nei, [])
            if node not in back:
                back.append(node)

    return adj


def asymmetric_links(adjacency):
    """(a, b) pairs where a lists b but b does not list a."""
    missing = []
    for a, neighbours in adjacency.items():
        for b in neighbours:
            if a not in adjacency.get(b, ()):
                missing.append((a, b))
    return missing


# ---------- Graph store ----------

class BuildingMap:
    """
    Read-only building graph: nodes, floors, undirected adjacency, exits,
    the evacuation start node and the named hazard presets.
    """

    def __init__(self, path=MAP_PATH):
        with open(path, "r") as f:
            data = json.load(f)
        self._load(data)

    @classmethod
    def from_dict(cls, data):
        bm = cls.__new__(cls)
        bm._load(data)
        return bm

    @classmethod
    def from_parts(cls, nodes, edges):
        """
        Ad-hoc map from a node table and an edge list (the free-form builder).

        `nodes` maps id -> {"label", "type"}; `edges` is a list of [a, b].
        Edges touching unknown ids are dropped. The first node typed "start"
        or "control" is the start; every "exit" node is an exit.
        """
        node_list = []
        for nid, attrs in nodes.items():
            attrs = attrs or {}
            node_list.append({
                "id": nid,
                "label": attrs.get("label") or nid,
                "floor": attrs.get("floor"),
                "type": attrs.get("type") or "room",
            })

        starts = [n["id"] for n in node_list if n["type"] in BUILDER_START_TYPES]
        exits = [n["id"] for n in node_list if n["type"] == "exit"]
        if not starts or not exits:
            raise MapError("Add at least one Start node and one Exit node to compute a path.")

        kept = [(a, b) for a, b in edges if a in nodes and b in nodes]
        return cls.from_dict({
            "nodes": node_list,
            "adjacency": {n["id"]: [] for n in node_list},
            "edges": kept,
            "exits": exits,
            "start": starts[0],
        })

    def _load(self, data):
        self.floors = dict(data.get("floors") or {})
        self.nodes = {}
        for n in data.get("nodes", []):
            if "id" not in n:
                raise MapError(f"Node without id: {n!r}")
            self.nodes[n["id"]] = {
                "id": n["id"],
                "label": n.get("label") or n["id"],
                "floor": n.get("floor"),
                "type": n.get("type", "room"),
            }

        raw = {k: list(v) for k, v in (data.get("adjacency") or {}).items()}
        for e in data.get("edges", []):
            if isinstance(e, dict):
                a, b = e["from"], e["to"]
            else:
                a, b = e
            # edge lists are undirected
            for x, y in ((a, b), (b, a)):
                row = raw.setdefault(x, [])
                if y not in row:
                    row.append(y)
        self.raw_adjacency = raw

        fixed = asymmetric_links(raw)
        for a, b in fixed:
            print(f"[Map] Added missing reverse link {b} -> {a}")
        self.adj = symmetrize(raw)

        if "exits" in data:
            self.exits = frozenset(data["exits"])
        else:
            self.exits = frozenset(nid for nid, n in self.nodes.items() if n["type"] == "exit")

        self.start = data.get("start")
        if self.start is None:
            raise MapError("Building map has no start node")

        self.presets = {}
        for name, p in (data.get("presets") or {}).items():
            self.presets[name] = {
                "nodes": list(p.get("nodes", [])),
                "edges": [tuple(e) for e in p.get("edges", [])],
                "description": p.get("description", ""),
            }

    # ---------- Lookups ----------

    def __contains__(self, node_id):
        return node_id in self.nodes

    def label(self, node_id):
        node = self.nodes.get(node_id)
        return node["label"] if node else node_id

    def floor_label(self, node_id):
        node = self.nodes.get(node_id)
        if not node or node["floor"] not in self.floors:
            return ""
        return self.floors[node["floor"]]["label"]

    def neighbours(self, node_id):
        return list(self.adj.get(node_id, ()))

    def has_edge(self, a, b):
        return b in self.adj.get(a, ())

    def nodes_on_floor(self, floor):
        return [nid for nid, n in self.nodes.items() if n["floor"] == floor]

    def floor_order(self):
        """Floor codes ground floor first, basement last (display order)."""
        codes = sorted(self.floors, key=lambda c: self.floors[c].get("order", 0))
        below = [c for c in codes if self.floors[c].get("order", 0) < self._ground_order()]
        return [c for c in codes if c not in below] + below

    def _ground_order(self):
        if "GF" in self.floors:
            return self.floors["GF"].get("order", 0)
        return 0

    # ---------- networkx view ----------

    def to_networkx(self):
        G = nx.Graph()
        for nid, n in self.nodes.items():
            G.add_node(nid, label=n["label"], floor=n["floor"], type=n["type"])
        for a, neighbours in self.adj.items():
            for b in neighbours:
                G.add_edge(a, b)
        return G

    def validate(self):
        """Human-readable list of dataset problems (empty when the map is sound)."""
        problems = []

        if self.start not in self.nodes:
            problems.append(f"Start node {self.start!r} is not a known node")
        if not self.exits:
            problems.append("No exit nodes defined")
        for ex in sorted(self.exits):
            if ex not in self.nodes:
                problems.append(f"Exit {ex!r} is not a known node")

        for nid, n in self.nodes.items():
            if n["type"] not in NODE_TYPES:
                problems.append(f"Node {nid!r} has unknown type {n['type']!r}")

        for a, neighbours in self.raw_adjacency.items():
            if a not in self.nodes:
                problems.append(f"Adjacency entry for unknown node {a!r}")
            for b in neighbours:
                if b not in self.nodes:
                    problems.append(f"{a!r} lists unknown neighbour {b!r}")

        for a, b in asymmetric_links(self.raw_adjacency):
            problems.append(f"{a!r} lists {b!r} but {b!r} does not list {a!r}")

        G = self.to_networkx()
        if self.start in G:
            reachable = nx.node_connected_component(G, self.start)
            if self.exits and not (self.exits & reachable):
                problems.append("No exit is reachable from the start node")

        return problems

    def summary(self):
        G = self.to_networkx()
        return {
            "nodes": G.number_of_nodes(),
            "edges": G.number_of_edges(),
            "floors": len(self.floors),
            "exits": sorted(self.exits),
            "start": self.start,
            "connected": nx.is_connected(G) if G.number_of_nodes() else False,
        }

    def to_dict(self):
        return {
            "floors": self.floors,
            "floor_order": self.floor_order(),
            "nodes": list(self.nodes.values()),
            "adjacency": self.adj,
            "exits": sorted(self.exits),
            "start": self.start,
            "presets": {
                name: {
                    "nodes": p["nodes"],
                    "edges": [list(e) for e in p["edges"]],
                    "description": p["description"],
                }
                for name, p in self.presets.items()
            },
        }
