# quran_player/audio_manager.py
import asyncio
import os
import sys
import threading
import time
from pathlib import Path
from typing import Dict, List, Optional, Sequence
from urllib.parse import urlparse

import aiofiles
import aiohttp
import pygame
import tqdm
from colorama import Fore, Style
from mutagen import MutagenError
from mutagen.mp3 import MP3

from .media_engine import MediaEngine, MediaStatus
from .utils import get_cache_dir


class PygameMediaEngine(MediaEngine):
    """
    MediaEngine backed by pygame's mixer and a local MP3 cache.

    Remote items are downloaded into the audio cache (resumable, validated with
    mutagen) before pygame plays them. The item after the current one is
    prefetched so verse-by-verse recitation continues without a pause. A
    daemon thread watches the mixer and posts the natural end of an item back
    to the event loop.
    """

    def __init__(self, loop: Optional[asyncio.AbstractEventLoop] = None, cache_dir: Optional[str] = None,
                 show_progress: Optional[bool] = None, max_retries: int = 5):
        super().__init__()
        self.loop = loop if loop is not None else asyncio.get_running_loop()
        self.audio_dir = Path(cache_dir) if cache_dir else get_cache_dir('audio_cache')
        os.makedirs(self.audio_dir, exist_ok=True)
        self.show_progress = sys.stderr.isatty() if show_progress is None else show_progress
        self.max_retries = max_retries

        # --- Pygame init ---
        try:
            pygame.mixer.init()
        except pygame.error as e:
            print(f"{Fore.RED}Error initializing pygame mixer: {e}{Style.RESET_ALL}", file=sys.stderr)
            print(f"{Fore.YELLOW}Audio playback will be disabled.{Style.RESET_ALL}", file=sys.stderr)
            self.mixer_initialized = False
        else:
            self.mixer_initialized = True

        self._urls: List[str] = []
        self._index = 0
        self._downloads: Dict[int, asyncio.Task] = {}
        self._load_task: Optional[asyncio.Task] = None
        self._load_generation = 0

        self.current_audio: Optional[Path] = None
        self.is_playing = False
        self._paused = False
        self._duration = 0.0
        self._pause_pending = False      # paused while the next item was still downloading
        self._waiting_for_next = False
        self.current_position = 0.0
        self.start_time = 0.0
        self.should_stop = False
        self.progress_thread: Optional[threading.Thread] = None
        self._play_token = 0
        self.seek_lock = threading.Lock()

    # --- Cache ---
    def get_audio_path(self, url: str) -> Path:
        """Cache file for a URL: host folder name plus the path segments."""
        parsed = urlparse(url)
        parts = [p for p in parsed.path.split('/') if p]
        stem = "_".join(parts) or "audio.mp3"
        safe = "".join(c for c in stem if c.isalnum() or c in ('.', '_', '-'))
        host = parsed.netloc.split('.')[0] or "local"
        return self.audio_dir / f"{host}_{safe}"

    async def download_audio(self, url: str, max_retries: Optional[int] = None) -> Optional[Path]:
        """
        Download an MP3 with resume support and retries.

        Returns the cached path, or None once every attempt failed. An existing
        valid file is reused. Local paths and file:// URLs are used in place.
        """
        parsed = urlparse(url)
        if parsed.scheme in ('', 'file'):
            local = Path(parsed.path if parsed.scheme == 'file' else url)
            return local if local.exists() else None

        retries = max_retries or self.max_retries
        filename = self.get_audio_path(url)
        temp_file = filename.with_suffix('.tmp')

        for attempt in range(retries):
            try:
                if filename.exists() and filename.stat().st_size > 0:
                    try:
                        MP3(filename)
                        return filename
                    except MutagenError:
                        filename.unlink(missing_ok=True)
                elif filename.exists():
                    filename.unlink(missing_ok=True)

                start_pos = temp_file.stat().st_size if temp_file.exists() else 0
                headers = {
                    'User-Agent': 'Mozilla/5.0',
                    'Accept': '*/*',
                    'Accept-Encoding': 'identity',
                    'Connection': 'keep-alive',
                }
                if start_pos > 0:
                    headers['Range'] = f'bytes={start_pos}-'
                mode = 'ab' if start_pos > 0 else 'wb'

                timeout = aiohttp.ClientTimeout(total=60)
                async with aiohttp.ClientSession(timeout=timeout) as session:
                    async with session.get(url, headers=headers) as response:
                        if response.status in (403, 404):
                            print(f"{Fore.RED}Audio not available ({response.status}): {url}{Style.RESET_ALL}", file=sys.stderr)
                            return None
                        if response.status == 416 and start_pos > 0:
                            # Server has nothing past what we already hold
                            temp_file.rename(filename)
                            continue
                        response.raise_for_status()
                        if start_pos > 0 and response.status != 206:
                            # Range ignored, start over
                            start_pos = 0
                            mode = 'wb'

                        content_length = response.headers.get('content-length')
                        total_size = int(content_length) + start_pos if content_length else None

                        pbar_kwargs = {
                            "desc": f"Downloading (Attempt {attempt + 1}/{retries})",
                            "unit": 'MB',
                            "total": total_size / (1024 * 1024) if total_size else None,
                            "initial": start_pos / (1024 * 1024),
                            "bar_format": '{desc}: {percentage:3.0f}%|{bar:30}| {n:.1f}/{total:.1f} MB • {rate_fmt}' if total_size else '{desc}: {n:.1f} MB downloaded',
                            "colour": 'red',
                            "mininterval": 0.1,
                            "leave": False,
                            "disable": not self.show_progress or total_size is None,
                        }

                        async with aiofiles.open(temp_file, mode=mode) as f:
                            with tqdm.tqdm(**pbar_kwargs) as pbar:
                                async for chunk in response.content.iter_chunked(8192):
                                    if not chunk:
                                        break
                                    await f.write(chunk)
                                    pbar.update(len(chunk) / (1024 * 1024))

                final_size = temp_file.stat().st_size
                if total_size is not None and final_size != total_size:
                    raise ValueError(f"Download incomplete: Expected {total_size}, Got {final_size}")
                if final_size == 0:
                    raise ValueError("Download resulted in empty file.")
                try:
                    MP3(temp_file)
                except MutagenError as e:
                    raise ValueError("MP3 validation failed") from e
                filename.unlink(missing_ok=True)
                temp_file.rename(filename)
                return filename

            except (aiohttp.ClientError, asyncio.TimeoutError):
                pass  # keep the partial file for the next attempt
            except (ValueError, OSError) as e:
                print(f"{Fore.YELLOW}Warning: {e} ({url}){Style.RESET_ALL}", file=sys.stderr)
                temp_file.unlink(missing_ok=True)

            if attempt < retries - 1:
                await asyncio.sleep((attempt + 1) * 2)

        temp_file.unlink(missing_ok=True)
        print(f"{Fore.RED}Failed to download audio after {retries} attempts: {url}{Style.RESET_ALL}", file=sys.stderr)
        return None

    def _fetch(self, index: int) -> asyncio.Task:
        task = self._downloads.get(index)
        if task is None:
            task = self.loop.create_task(self.download_audio(self._urls[index]))
            self._downloads[index] = task
        return task

    def _prefetch(self, index: int):
        if 0 <= index < len(self._urls):
            self._fetch(index)

    def _ready_path(self, index: int) -> Optional[Path]:
        task = self._downloads.get(index)
        if task is None or not task.done() or task.cancelled() or task.exception() is not None:
            return None
        return task.result()

    # --- MediaEngine ---
    def load(self, urls: Sequence[str]):
        self._halt(reset_state=True)
        self._cancel_downloads()
        self._load_generation += 1
        generation = self._load_generation
        self._urls = list(urls)
        self._index = 0

        if not self.mixer_initialized or not self._urls:
            self.loop.call_soon(self._emit_status, MediaStatus.FAILED)
            return
        self._load_task = self.loop.create_task(self._load_first(generation))

    async def _load_first(self, generation: int):
        try:
            path = await self._fetch(0)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            print(f"{Fore.RED}Unexpected error preparing audio: {e}{Style.RESET_ALL}", file=sys.stderr)
            path = None
        if generation != self._load_generation:
            return
        if path is None or not self._open(path):
            self._emit_status(MediaStatus.FAILED)
            return
        self._emit_status(MediaStatus.READY)
        self._prefetch(self._index + 1)

    def _open(self, file_path: Path) -> bool:
        """Load duration and hand the file to the mixer, without starting it."""
        try:
            self._duration = MP3(str(file_path)).info.length
            pygame.mixer.music.load(str(file_path))
        except (MutagenError, pygame.error, OSError) as e:
            print(f"{Fore.RED}Error loading audio {file_path.name}: {e}{Style.RESET_ALL}", file=sys.stderr)
            self._duration = 0.0
            return False
        if self._duration <= 0:
            return False
        self.current_audio = file_path
        self.current_position = 0.0
        self._paused = False
        return True

    def enqueue(self, url: str):
        self._urls.append(url)
        if len(self._urls) - 1 == self._index + 1:
            self._prefetch(self._index + 1)

    def play(self):
        if self._waiting_for_next:
            # _start_item plays it once the download lands
            self._pause_pending = False
            return
        if not self.mixer_initialized or self.current_audio is None or self.is_playing:
            return
        self._pause_pending = False
        try:
            if self._paused:
                pygame.mixer.music.unpause()
            else:
                pygame.mixer.music.play(start=self.current_position)
        except pygame.error as e:
            print(f"{Fore.RED}Error playing audio: {e}{Style.RESET_ALL}", file=sys.stderr)
            return
        self._paused = False
        self.is_playing = True
        self.start_time = time.time() - self.current_position
        self.start_progress_tracking()

    def pause(self):
        if not self.mixer_initialized:
            return
        if not self.is_playing:
            if self._waiting_for_next:
                self._pause_pending = True
            return
        try:
            self._play_token += 1
            pygame.mixer.music.pause()
            self.is_playing = False
            self._paused = True
            self.current_position = min(time.time() - self.start_time, self._duration)
        except pygame.error as e:
            print(f"{Fore.RED}Error pausing audio: {e}{Style.RESET_ALL}", file=sys.stderr)

    def seek(self, seconds: float):
        if not self.mixer_initialized or not self.current_audio or self._duration <= 0:
            return

        with self.seek_lock:
            try:
                target_pos = max(0.0, min(seconds, self._duration - 0.1))
                was_playing = self.is_playing
                self._play_token += 1

                # Stop/Load/Play(start=...) is more reliable than set_pos
                pygame.mixer.music.stop()
                pygame.mixer.music.load(str(self.current_audio))
                pygame.mixer.music.play(start=target_pos)

                self.current_position = target_pos
                self.start_time = time.time() - target_pos

                if not was_playing:
                    pygame.mixer.music.pause()
                    self.is_playing = False
                    self._paused = True
                else:
                    self.is_playing = True
                    self.start_progress_tracking()
            except pygame.error as e:
                print(f"{Fore.RED}Seek error: {e}{Style.RESET_ALL}", file=sys.stderr)

    def stop(self):
        self._load_generation += 1
        self._cancel_downloads()
        self._halt(reset_state=True)
        self._urls = []
        self._index = 0

    @property
    def current_index(self) -> int:
        return self._index

    @property
    def current_time(self) -> float:
        if self.is_playing:
            return min(time.time() - self.start_time, self._duration)
        return self.current_position

    @property
    def duration(self) -> Optional[float]:
        return self._duration or None

    # --- Internals ---
    def _cancel_downloads(self):
        if self._load_task is not None and not self._load_task.done():
            self._load_task.cancel()
        self._load_task = None
        for task in self._downloads.values():
            if not task.done():
                task.cancel()
        self._downloads = {}

    def _halt(self, reset_state: bool = False):
        """Stops the mixer and the tracking thread."""
        self._play_token += 1
        self.should_stop = True
        if self.progress_thread and self.progress_thread.is_alive() \
                and self.progress_thread is not threading.current_thread():
            self.progress_thread.join(timeout=0.5)
        self.progress_thread = None

        if self.mixer_initialized:
            try:
                pygame.mixer.music.stop()
                pygame.mixer.music.unload()
            except pygame.error as e:
                print(f"{Fore.YELLOW}Note: Pygame mixer error during stop/unload: {e}{Style.RESET_ALL}", file=sys.stderr)

        self.is_playing = False
        self._paused = False
        self._pause_pending = False
        self._waiting_for_next = False
        if reset_state:
            self.current_audio = None
            self.current_position = 0.0
            self._duration = 0.0
            self.start_time = 0.0

    def start_progress_tracking(self):
        """Starts a tracking thread bound to the current play token."""
        self.should_stop = False
        token = self._play_token
        self.progress_thread = threading.Thread(target=self._track_progress, args=(token,), daemon=True)
        self.progress_thread.start()

    def _track_progress(self, token: int):
        """Polls the mixer; posts the natural end of the item to the loop."""
        while not self.should_stop and token == self._play_token:
            try:
                if not pygame.mixer.music.get_busy():
                    if token == self._play_token and self.is_playing:
                        self.loop.call_soon_threadsafe(self._on_track_finished, token)
                    break
                self.current_position = min(time.time() - self.start_time, self._duration)
                time.sleep(0.1)
            except pygame.error:
                break

    def _on_track_finished(self, token: int):
        if token != self._play_token or not self.is_playing:
            return
        finished = self._index
        self.is_playing = False
        self.current_position = self._duration

        next_index = finished + 1
        if next_index < len(self._urls):
            path = self._ready_path(next_index)
            self._index = next_index
            if path is not None:
                self._start_item(path)
            else:
                self._waiting_for_next = True
                self.loop.create_task(self._start_when_ready(next_index, self._load_generation))
        else:
            # Stay on the last item; seek(0) + play() replays it
            self._paused = False
        self._emit_item_ended(finished)

    def _start_item(self, path: Path):
        """Open the current item and play it, unless a pause arrived while it downloaded."""
        self._waiting_for_next = False
        if not self._open(path):
            self._emit_status(MediaStatus.FAILED)
            return
        if not self._pause_pending:
            self.play()
        self._prefetch(self._index + 1)

    async def _start_when_ready(self, index: int, generation: int):
        try:
            path = await self._fetch(index)
        except asyncio.CancelledError:
            return
        if generation != self._load_generation or index != self._index:
            return
        if path is None:
            self._waiting_for_next = False
            self._emit_status(MediaStatus.FAILED)
            return
        self._start_item(path)
