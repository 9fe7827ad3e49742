"""Sound playback using the pygame mixer."""

import io
import os
import queue
import threading
import time
from pathlib import Path
from typing import Optional

os.environ.setdefault("PYGAME_HIDE_SUPPORT_PROMPT", "1")

import pygame
from loguru import logger

from . import SOUNDS_DIR

# Mixer output format: 44.1 kHz, signed 16-bit, stereo
SAMPLE_RATE = 44100
SAMPLE_SIZE = -16
CHANNELS = 2

# How often to check whether a clip has finished (seconds)
POLL_INTERVAL = 0.05


class _PlayRequest:
    def __init__(self, sound: str):
        self.sound = sound
        self.ok = False
        self.done = threading.Event()


class PlaybackEngine:
    """
    Plays sounds from the sounds directory one at a time.

    Every request goes through a single worker thread, so the mixer is only
    ever touched from one place. play() blocks its caller until the clip has
    finished.
    """

    def __init__(self, sounds_dir: Path = SOUNDS_DIR, mixer=None):
        """
        Args:
            sounds_dir: Directory sounds are resolved in
            mixer: Mixer module to use; defaults to pygame.mixer
        """
        self.sounds_dir = Path(sounds_dir)
        self._mixer = mixer if mixer is not None else pygame.mixer
        self._queue: "queue.Queue[Optional[_PlayRequest]]" = queue.Queue()
        self._lock = threading.Lock()
        self._worker: Optional[threading.Thread] = None
        self._mixer_ready = False
        self._closed = False

    def resolve(self, sound: str) -> Optional[Path]:
        """Path of `sound` inside the sounds directory, or None if it escapes it."""
        base = self.sounds_dir.resolve()
        path = (base / sound).resolve()
        if path == base or not path.is_relative_to(base):
            return None
        return path

    def play(self, sound: str) -> bool:
        """
        Play a sound and wait for it to finish.

        Returns True if the clip played, False on any load/decode/output error.
        """
        request = _PlayRequest(sound)
        with self._lock:
            if self._closed:
                logger.warning("Playback engine closed, not playing {}", sound)
                return False
            self._ensure_worker()
            self._queue.put(request)
        request.done.wait()
        return request.ok

    def close(self):
        """
        Finish the clips already queued, stop the worker and release the mixer.

        Later play() calls return False.
        """
        with self._lock:
            self._closed = True
            worker = self._worker
            self._worker = None
            if worker is not None:
                self._queue.put(None)
        if worker is not None:
            worker.join()

        with self._lock:
            if self._mixer_ready:
                self._mixer.quit()
                self._mixer_ready = False

    def _ensure_worker(self):
        # Caller holds self._lock
        if self._worker is None or not self._worker.is_alive():
            self._worker = threading.Thread(target=self._run, name="bell-player", daemon=True)
            self._worker.start()

    def _run(self):
        while True:
            request = self._queue.get()
            if request is None:
                break
            try:
                request.ok = self._play_now(request.sound)
            except Exception:
                logger.exception("Unexpected error playing {}", request.sound)
                request.ok = False
            finally:
                request.done.set()

    def _init_mixer(self) -> bool:
        """Initialize the mixer once; later calls are no-ops."""
        with self._lock:
            if self._mixer_ready:
                return True
            try:
                self._mixer.init(frequency=SAMPLE_RATE, size=SAMPLE_SIZE, channels=CHANNELS)
            except pygame.error as e:
                logger.error("Could not initialize audio output: {}", e)
                return False
            self._mixer_ready = True
            return True

    def _play_now(self, sound: str) -> bool:
        logger.info("Playing: {}", sound)

        path = self.resolve(sound)
        if path is None:
            logger.error("Sound {} is outside of {}", sound, self.sounds_dir)
            return False

        try:
            data = path.read_bytes()
        except OSError as e:
            logger.error("Could not load audio file: {}", e)
            return False

        if not self._init_mixer():
            return False

        music = self._mixer.music
        try:
            music.load(io.BytesIO(data), path.suffix.lstrip("."))
        except pygame.error as e:
            logger.error("Could not decode {}: {}", sound, e)
            return False

        music.play()
        while music.get_busy():
            time.sleep(POLL_INTERVAL)

        try:
            music.unload()
        except pygame.error as e:
            logger.error("Could not close player: {}", e)

        logger.debug("Finished: {}", sound)
        return True
