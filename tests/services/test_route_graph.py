"""Tests for the multi-stop route graph builder."""

import pytest

from src.services.route_graph import build_return_graph, build_route_graph
from src.shared.booking import Location
from src.shared.codec import to_provider_coords
from src.shared.types import PassengerAction, StopActionMode

FALLBACK = {"fallback_lat": 49.21, "fallback_lng": -2.13}

PICKUP = Location(address="Weighbridge Place", lat=49.1833, lng=-2.1066)
DROPOFF = Location(address="Jersey Airport", lat=49.2079, lng=-2.1955)


def _stop(n: int) -> Location:
    return Location(address=f"Stop {n}", lat=49.18 + n / 100, lng=-2.10 - n / 100)


class TestBuildRouteGraph:
    """Node and leg construction."""

    @pytest.mark.parametrize("k", [0, 1, 3])
    def test_k_stops_give_k_plus_two_nodes(self, k: int) -> None:
        """K valid stops give K+2 nodes and K+1 legs."""
        graph = build_route_graph(
            pickup=PICKUP, dropoff=DROPOFF, stops=[_stop(i) for i in range(k)], **FALLBACK,
        )
        assert len(graph.nodes) == k + 2
        assert len(graph.legs) == k + 1
        assert [n.seq for n in graph.nodes] == list(range(k + 2))

    def test_endpoint_actions(self) -> None:
        """First node is enter, last node is exit."""
        graph = build_route_graph(pickup=PICKUP, dropoff=DROPOFF, stops=[_stop(1)], **FALLBACK)
        assert graph.nodes[0].actions == (PassengerAction.ENTER,)
        assert graph.nodes[-1].actions == (PassengerAction.EXIT,)
        assert graph.nodes[1].actions == (PassengerAction.WAYPOINT,)

    def test_invalid_stop_dropped(self) -> None:
        """Three stops where the middle lacks a coordinate give four nodes."""
        stops = [_stop(1), Location(address="Missing lat", lng=-2.1), _stop(3)]
        graph = build_route_graph(pickup=PICKUP, dropoff=DROPOFF, stops=stops, **FALLBACK)
        assert len(graph.nodes) == 4
        assert [n.name for n in graph.nodes] == [
            "Weighbridge Place", "Stop 1", "Stop 3", "Jersey Airport",
        ]

    def test_stop_without_address_dropped(self) -> None:
        graph = build_route_graph(
            pickup=PICKUP,
            dropoff=DROPOFF,
            stops=[Location(address="", lat=49.2, lng=-2.1)],
            **FALLBACK,
        )
        assert len(graph.nodes) == 2

    def test_legs_follow_nodes(self) -> None:
        """Leg i runs from node i to node i+1 with both coordinate pairs."""
        graph = build_route_graph(pickup=PICKUP, dropoff=DROPOFF, stops=[_stop(2)], **FALLBACK)
        for i, leg in enumerate(graph.legs):
            a, b = graph.nodes[i], graph.nodes[i + 1]
            assert (leg.from_seq, leg.to_seq) == (i, i + 1)
            assert leg.pts == (a.coords[0], a.coords[1], b.coords[0], b.coords[1])

    def test_fallback_for_missing_endpoint_coords(self) -> None:
        graph = build_route_graph(
            pickup=Location(address="Unknown lane"), dropoff=DROPOFF, **FALLBACK,
        )
        assert graph.nodes[0].coords == to_provider_coords(49.21, -2.13)

    def test_notes_on_pickup_only(self) -> None:
        graph = build_route_graph(pickup=PICKUP, dropoff=DROPOFF, notes=" Gate 3 ", **FALLBACK)
        assert graph.nodes[0].info == "Gate 3"
        assert graph.nodes[1].info == ""


class TestWireShape:
    """Serialized node documents."""

    def test_asap_has_no_times(self) -> None:
        """Epoch 0 means no arrival constraint on the pickup node."""
        wire = build_route_graph(pickup=PICKUP, dropoff=DROPOFF, **FALLBACK).to_wire()
        assert wire["nodes"][0]["times"] is None
        assert wire["nodes"][1]["times"] is None

    def test_scheduled_pickup_times(self) -> None:
        wire = build_route_graph(
            pickup=PICKUP, dropoff=DROPOFF, pickup_epoch=1765564200, **FALLBACK,
        ).to_wire()
        assert wire["nodes"][0]["times"] == {"arrive": {"target": 1765564200, "latest": 0}}

    def test_actions_and_location(self) -> None:
        wire = build_route_graph(pickup=PICKUP, dropoff=DROPOFF, **FALLBACK).to_wire()
        pickup = wire["nodes"][0]
        assert pickup["actions"] == [{"@type": "client_action", "item_seq": 0, "action": "in"}]
        assert pickup["location"] == {
            "name": "Weighbridge Place",
            "coords": list(to_provider_coords(49.1833, -2.1066)),
        }
        assert wire["nodes"][1]["actions"][0]["action"] == "out"
        assert wire["meta"] == {"dist": 0, "est_dur": 0}

    def test_waypoint_stop_has_no_actions(self) -> None:
        wire = build_route_graph(
            pickup=PICKUP, dropoff=DROPOFF, stops=[_stop(1)], **FALLBACK,
        ).to_wire()
        assert wire["nodes"][1]["actions"] == []

    def test_via_stop_mode(self) -> None:
        wire = build_route_graph(
            pickup=PICKUP,
            dropoff=DROPOFF,
            stops=[_stop(1)],
            stop_action_mode=StopActionMode.VIA,
            **FALLBACK,
        ).to_wire()
        assert wire["nodes"][1]["actions"][0]["action"] == "via"

    def test_leg_wire(self) -> None:
        wire = build_route_graph(pickup=PICKUP, dropoff=DROPOFF, **FALLBACK).to_wire()
        leg = wire["legs"][0]
        assert leg["from_seq"] == 0
        assert leg["to_seq"] == 1
        assert leg["meta"] == {"dist": 0, "est_dur": 0}
        assert len(leg["pts"]) == 4


class TestReturnGraph:
    """Reversed two-node graph for return trips."""

    def test_swaps_endpoints_and_drops_stops(self) -> None:
        graph = build_return_graph(
            outbound_pickup=PICKUP,
            outbound_dropoff=DROPOFF,
            return_epoch=1765564200,
            notes="RETURN TRIP | Original booking: abc",
            **FALLBACK,
        )
        assert len(graph.nodes) == 2
        assert graph.nodes[0].name == "Jersey Airport"
        assert graph.nodes[1].name == "Weighbridge Place"
        assert graph.nodes[0].arrive_target == 1765564200
        assert graph.nodes[0].info == "RETURN TRIP | Original booking: abc"
