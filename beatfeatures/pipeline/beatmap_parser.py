"""Parse Beat Saber map packages into ``Document`` objects.

A map package is a zip archive (or an unpacked directory) holding an
``Info.dat`` plus one ``.dat`` file per difficulty and the song audio.
Info files in the v2 (``_difficultyBeatmapSets``) and v4
(``difficultyBeatmaps``) layouts are understood; difficulty files may be
v2 (``_notes``), v3 (``colorNotes``/``bombNotes``) or v4 (indexed
``colorNotesData``).

Song length is taken from the info file when it carries one, otherwise
from the audio file via ``soundfile``. When neither is usable the length
falls back to the last object's beat at the map BPM.
"""
from __future__ import annotations

import io
import json
import logging
import os
import zipfile
import zlib
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Tuple

import soundfile as sf

from .document import DifficultyBeatmap, DifficultyData, Document, Note, NoteType, Obstacle
from .errors import ItemError, ParseError
from .models import DifficultyTier

logger = logging.getLogger(__name__)

_NOTE_TYPES = {t.value: t for t in NoteType}


class MapFiles:
    """Case-insensitive read access to the files of one map package."""

    def __init__(self, names: Iterable[str], reader) -> None:
        self._by_lower = {name.lower(): name for name in names}
        self._reader = reader

    @classmethod
    def from_zip(cls, data: bytes) -> "MapFiles":
        archive = zipfile.ZipFile(io.BytesIO(data))
        names = [n for n in archive.namelist() if not n.endswith("/")]
        # some archives nest everything in one folder
        prefix = os.path.commonprefix(names) if len(names) > 1 else ""
        prefix = prefix[: prefix.rfind("/") + 1]
        return cls((n[len(prefix):] for n in names), lambda name: archive.read(prefix + name))

    @classmethod
    def from_directory(cls, path: Path) -> "MapFiles":
        names = [p.name for p in path.iterdir() if p.is_file()]
        return cls(names, lambda name: (path / name).read_bytes())

    def has(self, name: str) -> bool:
        return name.lower() in self._by_lower

    def read(self, name: str) -> bytes:
        try:
            actual = self._by_lower[name.lower()]
        except KeyError:
            raise FileNotFoundError(name) from None
        return self._reader(actual)

    def read_json(self, name: str) -> Dict[str, Any]:
        data = json.loads(self.read(name).decode("utf-8-sig"))
        if not isinstance(data, dict):
            raise ValueError(f"{name} is not a JSON object")
        return data


def _tier_from_info(label: str) -> Optional[DifficultyTier]:
    try:
        return DifficultyTier.from_label(label)
    except ItemError:
        logger.debug("Ignoring unknown difficulty %r in Info.dat", label)
        return None


def _read_info(info: Dict[str, Any]) -> Tuple[str, float, str, Optional[float], Dict[str, Dict[DifficultyTier, DifficultyBeatmap]]]:
    beatmaps: Dict[str, Dict[DifficultyTier, DifficultyBeatmap]] = {}
    if "_difficultyBeatmapSets" in info:
        for beatmap_set in info["_difficultyBeatmapSets"]:
            characteristic = beatmap_set["_beatmapCharacteristicName"]
            for entry in beatmap_set["_difficultyBeatmaps"]:
                tier = _tier_from_info(entry["_difficulty"])
                if tier is None:
                    continue
                beatmaps.setdefault(characteristic, {})[tier] = DifficultyBeatmap(
                    tier=tier,
                    filename=entry["_beatmapFilename"],
                    note_jump_speed=float(entry.get("_noteJumpMovementSpeed", 0.0)),
                )
        return (
            str(info.get("_songName", "")),
            float(info["_beatsPerMinute"]),
            str(info.get("_songFilename", "")),
            None,
            beatmaps,
        )

    if "difficultyBeatmaps" in info:
        audio = info.get("audio", {})
        for entry in info["difficultyBeatmaps"]:
            tier = _tier_from_info(entry["difficulty"])
            if tier is None:
                continue
            beatmaps.setdefault(entry["characteristic"], {})[tier] = DifficultyBeatmap(
                tier=tier,
                filename=entry["beatmapDataFilename"],
                note_jump_speed=float(entry.get("noteJumpMovementSpeed", 0.0)),
            )
        duration = audio.get("songDuration")
        return (
            str(info.get("song", {}).get("title", "")),
            float(audio["bpm"]),
            str(audio.get("songFilename", "")),
            float(duration) if duration else None,
            beatmaps,
        )

    raise ValueError("Info.dat has no difficulty beatmap list")


def _note(time: float, x: int, y: int, raw_type: int, direction: int) -> Optional[Note]:
    note_type = _NOTE_TYPES.get(int(raw_type))
    if note_type is None:
        return None
    return Note(time=float(time), line_index=int(x), line_layer=int(y), note_type=note_type, cut_direction=int(direction))


def _read_difficulty_v2(data: Dict[str, Any]) -> DifficultyData:
    notes: List[Note] = []
    for raw in data.get("_notes", []):
        note = _note(raw["_time"], raw["_lineIndex"], raw["_lineLayer"], raw["_type"], raw.get("_cutDirection", 0))
        if note is not None:
            notes.append(note)
    obstacles = [
        Obstacle(
            time=float(raw["_time"]),
            duration=float(raw.get("_duration", 0.0)),
            line_index=int(raw.get("_lineIndex", 0)),
            width=int(raw.get("_width", 1)),
            height=3 if raw.get("_type", 0) == 1 else 5,
        )
        for raw in data.get("_obstacles", [])
    ]
    return DifficultyData(notes=notes, obstacles=obstacles)


def _read_difficulty_v3(data: Dict[str, Any]) -> DifficultyData:
    notes: List[Note] = []
    for raw in data.get("colorNotes", []):
        note = _note(raw.get("b", 0), raw.get("x", 0), raw.get("y", 0), raw.get("c", 0), raw.get("d", 0))
        if note is not None:
            notes.append(note)
    for raw in data.get("bombNotes", []):
        notes.append(_note(raw.get("b", 0), raw.get("x", 0), raw.get("y", 0), NoteType.BOMB, 0))
    notes.sort(key=lambda n: n.time)
    obstacles = [
        Obstacle(
            time=float(raw.get("b", 0)),
            duration=float(raw.get("d", 0)),
            line_index=int(raw.get("x", 0)),
            width=int(raw.get("w", 1)),
            height=int(raw.get("h", 5)),
        )
        for raw in data.get("obstacles", [])
    ]
    return DifficultyData(notes=notes, obstacles=obstacles)


def _read_difficulty_v4(data: Dict[str, Any]) -> DifficultyData:
    color_data = data.get("colorNotesData", [])
    bomb_data = data.get("bombNotesData", [])
    obstacle_data = data.get("obstaclesData", [])
    notes: List[Note] = []
    for raw in data.get("colorNotes", []):
        meta = color_data[raw.get("i", 0)]
        note = _note(raw.get("b", 0), meta.get("x", 0), meta.get("y", 0), meta.get("c", 0), meta.get("d", 0))
        if note is not None:
            notes.append(note)
    for raw in data.get("bombNotes", []):
        meta = bomb_data[raw.get("i", 0)]
        notes.append(_note(raw.get("b", 0), meta.get("x", 0), meta.get("y", 0), NoteType.BOMB, 0))
    notes.sort(key=lambda n: n.time)
    obstacles = []
    for raw in data.get("obstacles", []):
        meta = obstacle_data[raw.get("i", 0)]
        obstacles.append(
            Obstacle(
                time=float(raw.get("b", 0)),
                duration=float(meta.get("d", 0)),
                line_index=int(meta.get("x", 0)),
                width=int(meta.get("w", 1)),
                height=int(meta.get("h", 5)),
            )
        )
    return DifficultyData(notes=notes, obstacles=obstacles)


def read_difficulty(data: Dict[str, Any]) -> DifficultyData:
    version = str(data.get("version", data.get("_version", "")))
    if version.startswith("4"):
        return _read_difficulty_v4(data)
    if version.startswith("3") or "colorNotes" in data:
        return _read_difficulty_v3(data)
    return _read_difficulty_v2(data)


def audio_duration(data: bytes) -> Optional[float]:
    """Duration in seconds of an encoded audio file, or None if it can't be decoded."""
    try:
        with sf.SoundFile(io.BytesIO(data)) as f:
            if f.samplerate <= 0:
                return None
            return f.frames / float(f.samplerate)
    except (RuntimeError, TypeError, ValueError) as exc:
        logger.debug("Audio decode failed: %s", exc)
        return None


def parse_map_files(files: MapFiles, reference: str = "") -> Document:
    try:
        song_name, bpm, song_filename, length, beatmaps = _read_info(files.read_json("Info.dat"))
        difficulties: Dict[str, Dict[DifficultyTier, DifficultyData]] = {}
        for characteristic, by_tier in beatmaps.items():
            for tier, beatmap in by_tier.items():
                difficulties.setdefault(characteristic, {})[tier] = read_difficulty(files.read_json(beatmap.filename))
    except (
        OSError, AttributeError, KeyError, IndexError, TypeError, ValueError, zipfile.BadZipFile, zlib.error
    ) as exc:
        raise ParseError(reference, f"Can't parse beatmap: {type(exc).__name__}: {exc}") from exc

    if length is None and song_filename and files.has(song_filename):
        try:
            length = audio_duration(files.read(song_filename))
        except (OSError, zipfile.BadZipFile, zlib.error) as exc:
            logger.debug("Can't read audio %s: %s", song_filename, exc)
    if length is None:
        last_beat = max(
            (data.last_beat() for by_tier in difficulties.values() for data in by_tier.values()),
            default=0.0,
        )
        length = last_beat * 60.0 / bpm if bpm else 0.0
        logger.warning("No usable audio for %s; length estimated from last beat as %.2fs", reference or song_name, length)

    return Document(song_name=song_name, bpm=bpm, length=length, beatmaps=beatmaps, difficulties=difficulties)


def parse_map_archive(data: bytes, reference: str = "") -> Document:
    try:
        files = MapFiles.from_zip(data)
    except zipfile.BadZipFile as exc:
        raise ParseError(reference, f"Not a map archive: {exc}") from exc
    return parse_map_files(files, reference)


def parse_map_directory(path: str | Path, reference: str = "") -> Document:
    try:
        files = MapFiles.from_directory(Path(path))
    except OSError as exc:
        raise ParseError(reference, f"Can't read map directory: {exc}") from exc
    return parse_map_files(files, reference)
