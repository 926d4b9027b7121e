"""Sound cues driven by game events.

The state machines never touch audio. A :class:`SoundBoard` subscribes to an
:class:`~quizparty.core.events.EventBus`, maps events to cues and hands them to
a playback sink; background music is a handle owned by the board.
"""

from __future__ import annotations

from enum import Enum
from typing import Callable, Dict, List, Optional, Protocol

import structlog

from ..core.events import EventBus, EventKind, GameEvent
from ..core.persistence import SaveSlot
from ..core.schemas import VolumeSettings

LOGGER = structlog.get_logger(__name__)


class SoundCue(str, Enum):
    OPEN_CARD = "match-game/open-card.mp3"
    MATCH_CARD = "match-game/match-card.mp3"
    FINISH_GAME = "match-game/finish-game.mp3"
    WALKING_FORWARD = "snake-ladder/walking-forward.mp3"
    SHIELD_GAINED = "snake-ladder/get-shield.mp3"
    SHIELD_BROKEN = "snake-ladder/shield-broken.mp3"
    VICTORY_FIRST = "snake-ladder/victory-1st.mp3"
    VICTORY_ALL_RANKING = "snake-ladder/victory-all-rangking.mp3"


BACKGROUND_MUSIC = "snake-ladder/background-music.mp3"

# Base loudness per cue; multiplied by the player's effects volume.
CUE_VOLUMES: Dict[SoundCue, float] = {
    SoundCue.OPEN_CARD: 0.8,
    SoundCue.MATCH_CARD: 0.8,
    SoundCue.FINISH_GAME: 0.8,
    SoundCue.WALKING_FORWARD: 0.6,
    SoundCue.SHIELD_GAINED: 0.7,
    SoundCue.SHIELD_BROKEN: 0.7,
    SoundCue.VICTORY_FIRST: 0.8,
    SoundCue.VICTORY_ALL_RANKING: 0.8,
}


class Playback(Protocol):
    def stop(self) -> None:
        ...

    def set_volume(self, volume: float) -> None:
        ...


class SoundSink(Protocol):
    """Playback backend."""

    def play(self, asset: str, *, volume: float, loop: bool = False) -> Playback:
        ...


class _LoggedPlayback:
    def __init__(self, asset: str, volume: float) -> None:
        self.asset = asset
        self.volume = volume
        self.stopped = False

    def stop(self) -> None:
        self.stopped = True
        LOGGER.debug("sound.stopped", asset=self.asset)

    def set_volume(self, volume: float) -> None:
        self.volume = volume


class LoggingSink:
    """Default sink: records every cue in the log instead of playing it."""

    def play(self, asset: str, *, volume: float, loop: bool = False) -> _LoggedPlayback:
        LOGGER.debug("sound.played", asset=asset, volume=round(volume, 3), loop=loop)
        return _LoggedPlayback(asset, volume)


def _clamp(volume: float) -> float:
    return max(0.0, min(1.0, volume))


class BackgroundMusic:
    """Single looping music track; ``start`` while playing is a no-op."""

    def __init__(self, sink: SoundSink, asset: str = BACKGROUND_MUSIC, *, volume: float = 0.1) -> None:
        self._sink = sink
        self.asset = asset
        self.volume = _clamp(volume)
        self._playback: Optional[Playback] = None

    @property
    def playing(self) -> bool:
        return self._playback is not None

    def start(self) -> None:
        if self._playback is not None:
            return
        self._playback = self._sink.play(self.asset, volume=self.volume, loop=True)

    def stop(self) -> None:
        if self._playback is None:
            return
        self._playback.stop()
        self._playback = None

    def set_volume(self, volume: float) -> None:
        self.volume = _clamp(volume)
        if self._playback is not None:
            self._playback.set_volume(self.volume)


class SoundBoard:
    """Event-to-cue mapping with persisted volume settings."""

    def __init__(
        self,
        sink: Optional[SoundSink] = None,
        *,
        settings_slot: Optional[SaveSlot[VolumeSettings]] = None,
    ) -> None:
        self.sink: SoundSink = sink or LoggingSink()
        self.settings_slot = settings_slot
        loaded = settings_slot.load() if settings_slot is not None else None
        self.settings = loaded or VolumeSettings()
        self.music = BackgroundMusic(self.sink, volume=self.settings.bgm_volume)
        self._unsubscribers: List[Callable[[], None]] = []

    def attach(self, bus: EventBus) -> None:
        self._unsubscribers.append(bus.subscribe(self.handle))

    def close(self) -> None:
        for unsubscribe in self._unsubscribers:
            unsubscribe()
        self._unsubscribers.clear()
        self.music.stop()

    def cue_for(self, event: GameEvent) -> Optional[SoundCue]:
        kind = event.kind
        if kind is EventKind.CARD_OPENED:
            return SoundCue.OPEN_CARD
        if kind is EventKind.MATCH_FOUND:
            return SoundCue.MATCH_CARD
        if kind is EventKind.GAME_FINISHED:
            return SoundCue.FINISH_GAME if event.game == "match" else SoundCue.VICTORY_ALL_RANKING
        if kind is EventKind.PLAYER_MOVED and event.payload.get("end", 0) > event.payload.get("start", 0):
            return SoundCue.WALKING_FORWARD
        if kind is EventKind.PLAYER_FINISHED and event.payload.get("rank") == 1:
            return SoundCue.VICTORY_FIRST
        if kind is EventKind.SHIELD_GAINED:
            return SoundCue.SHIELD_GAINED
        if kind is EventKind.SHIELD_BROKEN:
            return SoundCue.SHIELD_BROKEN
        return None

    def handle(self, event: GameEvent) -> None:
        cue = self.cue_for(event)
        if cue is not None:
            self.play(cue)

    def play(self, cue: SoundCue) -> Playback:
        return self.sink.play(cue.value, volume=_clamp(CUE_VOLUMES[cue] * self.settings.sfx_volume))

    def set_bgm_volume(self, volume: float) -> VolumeSettings:
        self.settings = VolumeSettings(bgm_volume=volume, sfx_volume=self.settings.sfx_volume)
        self.music.set_volume(self.settings.bgm_volume)
        self._save()
        return self.settings

    def set_sfx_volume(self, volume: float) -> VolumeSettings:
        self.settings = VolumeSettings(bgm_volume=self.settings.bgm_volume, sfx_volume=volume)
        self._save()
        return self.settings

    def _save(self) -> None:
        if self.settings_slot is not None:
            self.settings_slot.save(self.settings)
