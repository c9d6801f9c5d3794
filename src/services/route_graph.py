"""Route graph builder for multi-stop trips.

Builds the ordered node list (pickup, stops, dropoff) and the legs
between adjacent nodes, in the shape the Booker API expects:

    node 0        pickup, passenger action ``in``
    node 1..K     intermediate stops (waypoint or via)
    node K+1      dropoff, passenger action ``out``

Leg distance and duration are left at zero; the provider recomputes them.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from src.shared.booking import Location
from src.shared.codec import has_coordinates, resolve_point, to_provider_coords
from src.shared.types import PassengerAction, StopActionMode

_WIRE_ACTIONS: dict[PassengerAction, str] = {
    PassengerAction.ENTER: "in",
    PassengerAction.EXIT: "out",
    PassengerAction.VIA: "via",
}


@dataclass(frozen=True)
class RouteNode:
    """A single stop on the route.

    Attributes:
        name: Display address.
        coords: Provider-scale ``(lng, lat)`` integers.
        actions: Passenger actions at this node.
        arrive_target: Target arrival epoch second, 0 for no constraint.
        info: Free-text driver info.
        seq: Zero-based sequence index.
    """

    name: str
    coords: tuple[int, int]
    actions: tuple[PassengerAction, ...]
    arrive_target: int
    info: str
    seq: int

    def to_wire(self) -> dict[str, Any]:
        """Serialize to the Booker node document."""
        times = (
            {"arrive": {"target": self.arrive_target, "latest": 0}}
            if self.arrive_target > 0
            else None
        )
        return {
            "seq": self.seq,
            "actions": [
                {"@type": "client_action", "item_seq": 0, "action": _WIRE_ACTIONS[a]}
                for a in self.actions
                if a in _WIRE_ACTIONS
            ],
            "location": {"name": self.name, "coords": list(self.coords)},
            "times": times,
            "info": {"all": self.info},
        }


@dataclass(frozen=True)
class RouteLeg:
    """Directed connection between two consecutive nodes."""

    from_seq: int
    to_seq: int
    pts: tuple[int, int, int, int]
    dist: int = 0
    est_dur: int = 0

    def to_wire(self) -> dict[str, Any]:
        """Serialize to the Booker leg document."""
        return {
            "from_seq": self.from_seq,
            "to_seq": self.to_seq,
            "meta": {"dist": self.dist, "est_dur": self.est_dur},
            "pts": list(self.pts),
        }


@dataclass(frozen=True)
class RouteGraph:
    """Ordered nodes plus the legs derived from them."""

    nodes: tuple[RouteNode, ...]
    legs: tuple[RouteLeg, ...] = field(default=())

    def to_wire(self) -> dict[str, Any]:
        """Serialize to the Booker ``route`` document."""
        return {
            "nodes": [n.to_wire() for n in self.nodes],
            "legs": [leg.to_wire() for leg in self.legs],
            "meta": {"dist": 0, "est_dur": 0},
        }


def build_route_graph(
    *,
    pickup: Location,
    dropoff: Location,
    stops: list[Location] | None = None,
    notes: str = "",
    pickup_epoch: int = 0,
    stop_action_mode: StopActionMode = StopActionMode.WAYPOINT,
    fallback_lat: float,
    fallback_lng: float,
) -> RouteGraph:
    """Assemble the route graph for a booking.

    Stops lacking an address or either coordinate are dropped, not
    rejected. Pickup and dropoff without coordinates use the fallback.

    Args:
        pickup: Pickup location.
        dropoff: Dropoff location.
        stops: Ordered intermediate stops.
        notes: Merged notes attached to the pickup node.
        pickup_epoch: Pickup target epoch second, 0 for ASAP.
        stop_action_mode: Marker applied to intermediate stops.
        fallback_lat: Latitude used when pickup/dropoff lack coordinates.
        fallback_lng: Longitude used when pickup/dropoff lack coordinates.

    Returns:
        RouteGraph with K+2 nodes and K+1 legs for K valid stops.
    """
    stop_action = (
        PassengerAction.VIA
        if stop_action_mode == StopActionMode.VIA
        else PassengerAction.WAYPOINT
    )
    entries: list[tuple[str, tuple[int, int], tuple[PassengerAction, ...], int, str]] = []

    entries.append((
        pickup.address,
        _endpoint_coords(pickup, fallback_lat, fallback_lng),
        (PassengerAction.ENTER,),
        pickup_epoch if pickup_epoch > 0 else 0,
        notes.strip(),
    ))
    for stop in stops or []:
        if not stop.address or not has_coordinates(stop.lat, stop.lng):
            continue
        entries.append((
            stop.address,
            to_provider_coords(stop.lat, stop.lng),  # type: ignore[arg-type]
            (stop_action,),
            0,
            "",
        ))
    entries.append((
        dropoff.address,
        _endpoint_coords(dropoff, fallback_lat, fallback_lng),
        (PassengerAction.EXIT,),
        0,
        "",
    ))

    nodes = tuple(
        RouteNode(
            name=name,
            coords=coords,
            actions=actions,
            arrive_target=target,
            info=info,
            seq=seq,
        )
        for seq, (name, coords, actions, target, info) in enumerate(entries)
    )
    return RouteGraph(nodes=nodes, legs=derive_legs(nodes))


def build_return_graph(
    *,
    outbound_pickup: Location,
    outbound_dropoff: Location,
    return_epoch: int,
    notes: str,
    fallback_lat: float,
    fallback_lng: float,
) -> RouteGraph:
    """Build the two-node reversed route for a return trip.

    The outbound dropoff becomes the return pickup and vice versa.
    Intermediate stops are not carried over.
    """
    return build_route_graph(
        pickup=outbound_dropoff,
        dropoff=outbound_pickup,
        stops=[],
        notes=notes,
        pickup_epoch=return_epoch,
        fallback_lat=fallback_lat,
        fallback_lng=fallback_lng,
    )


def derive_legs(nodes: tuple[RouteNode, ...]) -> tuple[RouteLeg, ...]:
    """One leg per adjacent node pair with ``[fromLng, fromLat, toLng, toLat]``."""
    return tuple(
        RouteLeg(
            from_seq=a.seq,
            to_seq=b.seq,
            pts=(a.coords[0], a.coords[1], b.coords[0], b.coords[1]),
        )
        for a, b in zip(nodes, nodes[1:])
    )


def _endpoint_coords(
    location: Location,
    fallback_lat: float,
    fallback_lng: float,
) -> tuple[int, int]:
    lat, lng = resolve_point(
        location.lat,
        location.lng,
        fallback_lat=fallback_lat,
        fallback_lng=fallback_lng,
    )
    return to_provider_coords(lat, lng)
