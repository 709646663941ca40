"""Who can see what.

Pure functions over plain values so the rules can be checked without a
loaded game. Callers pass a viewer location only when it is recent;
a stale location is the same as none.

Rules, in order:
- no role record -> nothing is visible
- a role check always precedes a distance check
- a null team on either side never counts as a match
- distance comparisons are inclusive
"""
from typing import NamedTuple, Optional

from models.coordinate import Coordinate
from models.domain_models import UserState


class VisibilityState(NamedTuple):
    visible: bool = False
    ally: bool = False
    in_range: bool = False


HIDDEN = VisibilityState()


def teams_match(a: Optional[str], b: Optional[str]) -> bool:
    return a is not None and b is not None and a == b


def effective_range(remembered_in_range: bool, base_range: float, active_range: float) -> float:
    """The tighter active radius once in range, the detection radius otherwise."""
    return min(active_range, base_range) if remembered_in_range else base_range


def compute_factory_visibility(
    state: Optional[UserState],
    viewer_team: Optional[str],
    viewer_location: Optional[Coordinate],
    factory_team: Optional[str],
    factory_location: Optional[Coordinate],
    *,
    remembered_in_range: bool,
    base_range: float,
    active_range: float,
) -> VisibilityState:
    if state is None:
        return HIDDEN

    acts_in_world = state["player"] or state["special"]
    if not (acts_in_world or state["spectator"]):
        return HIDDEN

    ally = teams_match(viewer_team, factory_team)

    in_range = False
    if acts_in_world and viewer_location is not None and factory_location is not None:
        threshold = effective_range(remembered_in_range, base_range, active_range)
        in_range = viewer_location.distance_to(factory_location) <= threshold

    return VisibilityState(visible=state["spectator"] or ally or in_range, ally=ally, in_range=in_range)


def compute_shop_visibility(
    viewer_id: str,
    dealer_id: str,
    viewer_location: Optional[Coordinate],
    dealer_location: Optional[Coordinate],
    shop_range: float,
) -> bool:
    """Whether the viewer is within trading range of the dealer."""
    if viewer_id == dealer_id:
        return True
    if viewer_location is None or dealer_location is None:
        return False
    return viewer_location.distance_to(dealer_location) <= shop_range


def compute_player_visibility(
    viewer_id: str,
    state: Optional[UserState],
    viewer_team: Optional[str],
    other_id: str,
    other_team: Optional[str],
    *,
    other_is_dealer: bool = False,
    dealer_in_range: bool = False,
) -> bool:
    if viewer_id == other_id:
        return True
    if state is None:
        return False
    if state["spectator"] or state["special"]:
        return True
    if not state["player"]:
        return False
    if teams_match(viewer_team, other_team):
        return True
    return other_is_dealer and dealer_in_range
