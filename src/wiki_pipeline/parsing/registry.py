from __future__ import annotations

from pathlib import Path

from .schema import RecordProfile


RECORD_KINDS: tuple[str, ...] = ("agents", "weapons", "bomps", "driver_discs")


def get_profile(kind: str, *, list_path: Path | None = None) -> RecordProfile:
    """
    A registry that assigns a record kind its profile. `FieldSpec` defines the extraction rules inside the profile modules.
    `list_path` points the agent profile at a specific list document instead of `WIKI_LIST_DOCUMENT`.
    """
    if kind == "agents":
        if list_path is not None:
            from .listing import EntryListIndex
            from .profiles.agents import build_agent_profile
            return build_agent_profile(list_index=EntryListIndex(list_path))
        from .profiles.agents import AGENT_PROFILE
        return AGENT_PROFILE

    if kind == "weapons":
        from .profiles.weapons import WEAPON_PROFILE
        return WEAPON_PROFILE

    if kind == "bomps":
        from .profiles.bomps import BOMP_PROFILE
        return BOMP_PROFILE

    if kind == "driver_discs":
        from .profiles.driver_discs import DRIVER_DISC_PROFILE
        return DRIVER_DISC_PROFILE

    raise ValueError(f"Unknown record kind: {kind}")
