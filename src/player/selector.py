# player/selector.py
"""
Player selection strategy.

Everything here is a pure function over a registry snapshot
(bus name -> PlayerRecord, in discovery order) and the user's preference.
Priority: Music Playing > Video Playing > Music Paused > Video Paused
          > Music Stopped > Video Stopped
"""
from __future__ import annotations

from typing import Iterable, Mapping, Optional, Tuple

from core.models import PlaybackStatus, PlayerRecord, SelectionPreference

# Tuning constant: keeps Playing music above Playing video, and Paused music
# below Playing video.
MUSIC_BOOST = 0.5

STATUS_PRIORITY = {
    PlaybackStatus.PLAYING: 3,
    PlaybackStatus.PAUSED: 2,
    PlaybackStatus.STOPPED: 1,
}

Registry = Mapping[str, PlayerRecord]


def playback_priority(status) -> int:
    return STATUS_PRIORITY.get(status, 0)


def player_rank(info: PlayerRecord) -> float:
    rank = float(playback_priority(info.playback_status))
    if not info.is_video:
        rank += MUSIC_BOOST
    return rank


def is_auto_mode(preference: SelectionPreference, registry: Registry) -> bool:
    """Auto, or a pinned player that is currently not on the bus."""
    if preference.is_auto:
        return True
    pinned = preference.pinned_id
    return pinned is not None and pinned not in registry


def select_player(registry: Registry, preference: SelectionPreference) -> Optional[str]:
    pinned = preference.pinned_id
    if pinned and pinned in registry:
        return pinned

    if preference.is_none:
        return None

    # Auto, or a pin that cannot be satisfied right now
    return auto_select_player(registry)


def _find_best(players: Iterable[Tuple[str, PlayerRecord]]) -> Optional[str]:
    first: Optional[str] = None
    best: Optional[str] = None
    best_priority = 0

    for name, info in players:
        if first is None:
            first = name
        priority = playback_priority(info.playback_status)
        if priority > best_priority:
            best_priority = priority
            best = name

    return best or first


def auto_select_player(registry: Registry) -> Optional[str]:
    items = list(registry.items())
    best_music = _find_best((n, i) for n, i in items if not i.is_video)
    best_video = _find_best((n, i) for n, i in items if i.is_video)

    if best_music is None:
        return best_video
    if best_video is None:
        return best_music

    music_priority = playback_priority(registry[best_music].playback_status) + MUSIC_BOOST
    video_priority = playback_priority(registry[best_video].playback_status)
    return best_music if music_priority >= video_priority else best_video


def should_auto_switch(current: Optional[str], registry: Registry) -> bool:
    """True when the current player is idle and another one is playing."""
    info = registry.get(current) if current else None
    if info is not None and info.playback_status == PlaybackStatus.PLAYING:
        return False

    return any(
        name != current and rec.playback_status == PlaybackStatus.PLAYING
        for name, rec in registry.items()
    )


def should_activate_new_player(
    new_id: str,
    new_info: Optional[PlayerRecord],
    current_id: Optional[str],
    preference: SelectionPreference,
    has_active: bool,
    registry: Registry,
) -> bool:
    """Decide whether a player that just appeared should take over right away."""
    if not has_active:
        return True

    if preference.is_none:
        return False

    if preference.pinned_id == new_id:
        return True

    if not is_auto_mode(preference, registry):
        return False

    if new_info is None or new_info.playback_status != PlaybackStatus.PLAYING:
        return False

    # music always takes over
    if not new_info.is_video:
        return True

    # video never replaces music
    current = registry.get(current_id) if current_id else None
    if current is not None and not current.is_video:
        return False

    return True
