"""
Shared fixtures: the bundled building, small synthetic graphs and a
controllable clock for the timer.
"""

import pytest

from engine import EvacuationEngine
from evac_timer import EvacTimer
from map_builder import BuildingMap


class FakeClock:
    def __init__(self, now=0.0):
        self.now = now

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += seconds


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def building():
    return BuildingMap()


@pytest.fixture
def engine(building, clock):
    return EvacuationEngine(building, timer=EvacTimer(clock=clock))


@pytest.fixture
def line_graph():
    """S - A - B, with B the only exit."""
    adj = {"S": ["A"], "A": ["S", "B"], "B": ["A"]}
    return adj, {"B"}, "S"


@pytest.fixture
def diamond_graph():
    """S -> {A, B} -> E, A listed before B."""
    adj = {"S": ["A", "B"], "A": ["S", "E"], "B": ["S", "E"], "E": ["A", "B"]}
    return adj, {"E"}, "S"


@pytest.fixture
def tiny_map():
    return BuildingMap.from_dict({
        "floors": {"GF": {"label": "Ground", "color": "#000", "order": 0}},
        "nodes": [
            {"id": "S", "label": "Start", "floor": "GF", "type": "control"},
            {"id": "A", "label": "Corridor A", "floor": "GF", "type": "corridor"},
            {"id": "B", "label": "Corridor B", "floor": "GF", "type": "corridor"},
            {"id": "E", "label": "Exit", "floor": "GF", "type": "exit"},
        ],
        "adjacency": {"S": ["A", "B"], "A": ["S", "E"], "B": ["S", "E"], "E": ["A", "B"]},
        "start": "S",
        "presets": {
            "Corridor A Fire": {"nodes": ["A"], "edges": [], "description": "A burns"},
            "Door Jam": {"nodes": [], "edges": [["E", "B"]], "description": "B door jammed"},
        },
    })
