"""OSM public-transport modes, their broad categories and mode extraction."""

from transit_zoning import tags as t

# ── Supported OSM modes ──────────────────────────────────────────────
ROAD = "road"
RAIL = "rail"
WATER = "water"

BUS = "bus"
TROLLEYBUS = "trolleybus"
SHARE_TAXI = "share_taxi"
MINIBUS = "minibus"
COACH = "coach"

TRAIN = "train"
TRAM = "tram"
LIGHT_RAIL = "light_rail"
SUBWAY = "subway"
MONORAIL = "monorail"
FUNICULAR = "funicular"

FERRY = "ferry"

MODES_BY_CATEGORY = {
    ROAD: (BUS, TROLLEYBUS, SHARE_TAXI, MINIBUS, COACH),
    RAIL: (TRAIN, TRAM, LIGHT_RAIL, SUBWAY, MONORAIL, FUNICULAR),
    WATER: (FERRY,),
}

CATEGORY_BY_MODE = {mode: cat for cat, modes in MODES_BY_CATEGORY.items() for mode in modes}
SUPPORTED_MODES = frozenset(CATEGORY_BY_MODE)

# Road mode category keys that expand to several modes, e.g. psv=no
ROAD_MODE_CATEGORIES = {
    "psv": (BUS, TROLLEYBUS, SHARE_TAXI, MINIBUS, COACH),
}

YES = "yes"
NO = "no"


def category_of(mode: str) -> str | None:
    return CATEGORY_BY_MODE.get(mode)


def is_rail_mode(mode: str) -> bool:
    return category_of(mode) == RAIL


def is_water_mode(mode: str) -> bool:
    return category_of(mode) == WATER


def is_road_mode(mode: str) -> bool:
    return category_of(mode) == ROAD


def sort_modes(modes) -> list[str]:
    return sorted(modes)


def _clean(value: str) -> str:
    return "".join(c for c in value.lower() if c.isalnum() or c == "_")


def _modes_with_value(tags: dict, candidates, value: str) -> set[str]:
    found = {mode for mode in candidates if mode in tags and _clean(tags[mode]) == value}
    for key, modes in ROAD_MODE_CATEGORIES.items():
        if key in tags and _clean(tags[key]) == value:
            found.update(m for m in modes if m in candidates)
    return found


def collect_modes(tags: dict, default_mode: str | None = None, candidates=SUPPORTED_MODES) -> set[str]:
    """Modes explicitly marked ``<mode>=yes`` minus those marked ``<mode>=no``.

    When nothing is marked explicitly the default mode (if any) is used.
    """
    included = _modes_with_value(tags, candidates, YES)
    if included:
        return included - _modes_with_value(tags, candidates, NO)
    if default_mode is not None:
        return {default_mode}
    return set()


def identify_ptv1_default_mode(tags: dict) -> str | None:
    """Mode implied by the Ptv1 tags of an entity, if any."""
    if t.is_bus_stop(tags) or t.is_highway_platform(tags) or tags.get(t.HIGHWAY) == "station":
        return BUS
    if t.is_tram_stop(tags):
        return TRAM
    if tags.get(t.RAILWAY) in (
        t.RAILWAY_STATION, t.RAILWAY_HALT, t.RAILWAY_PLATFORM, t.RAILWAY_PLATFORM_EDGE, t.RAILWAY_STOP,
    ):
        return TRAIN
    if t.is_ferry_terminal(tags) or tags.get(FERRY) == YES:
        return FERRY
    return None


def compatible_modes(check, reference, allow_pseudo: bool = False) -> set[str]:
    """Modes of ``check`` compatible with ``reference``.

    Exact overlap always counts; with ``allow_pseudo`` a mode also counts when
    ``reference`` holds any mode of the same broad category.
    """
    check = set(check or ())
    reference = set(reference or ())
    if not allow_pseudo:
        return check & reference
    reference_categories = {category_of(m) for m in reference}
    return {m for m in check if m in reference or category_of(m) in reference_categories}


def is_mode_compatible(check, reference, allow_pseudo: bool = False) -> bool:
    return bool(compatible_modes(check, reference, allow_pseudo))
