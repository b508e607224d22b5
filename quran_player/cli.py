# quran_player/cli.py
import argparse
import asyncio
import sys
from typing import List, Optional

from colorama import Fore, Style, init

from .models import STYLE_FIELDS, TOTAL_CHAPTERS, ContinuationPolicy, normalize_style, style_field
from .playback_sequencer import PlaybackMode, PlaybackSequencer
from .quran_data_handler import CorpusLoadError, QuranDataHandler
from .reciters import PlaybackItemResolver
from .resume_store import ResumeStateStore
from .settings_manager import JsonFileStore, Settings
from .transport import TransportIntegration
from .utils import format_time
from .verse_index import VerseIndex
from .version import VERSION

COMMANDS = [
    ("play <chapter> [repeat]", "Recite a whole chapter"),
    ("last", "Continue the last listened chapter"),
    ("verse <chapter> <verse> [c] [repeat]", "Recite one verse, 'c' continues to the next"),
    ("range <chapter> <start> <end> [each] [section]", "Recite a verse range with repeats"),
    ("bismillah", "Recite the basmala"),
    ("pause / resume / stop", "Playback control"),
    ("seek <±seconds>", "Jump within the current recitation"),
    ("back / next", "Previous (double back) or next item"),
    ("search <text>", "Find verses in Arabic, English or transliteration"),
    ("style [name]", "Show or set the recitation style (Hafs, Warsh, ...)"),
    ("reciter [name]", "Show or set the reciter"),
    ("policy [next|previous|end]", "What happens after a chapter ends"),
    ("fav [chapter]", "List favourite chapters or toggle one"),
    ("reverse", "Toggle Arabic text reversal for terminals without RTL"),
    ("status", "Show what is playing"),
    ("quit", "Exit"),
]

POLICY_ALIASES = {
    "next": ContinuationPolicy.NEXT,
    "previous": ContinuationPolicy.PREVIOUS,
    "prev": ContinuationPolicy.PREVIOUS,
    "end": ContinuationPolicy.END,
}


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="quran-player",
        description="Listen to Quran recitation and search verses from the terminal.",
    )
    parser.add_argument("--corpus", default=None,
                        help="Path to the Quran corpus JSON (default: bundled database).")
    parser.add_argument("--qiraat-dir", default=None,
                        help="Directory with Qiraah*.json text overlays.")
    parser.add_argument("--settings", default=None,
                        help="Preferences file (default: user config directory).")
    parser.add_argument("--cache-dir", default=None,
                        help="Audio cache directory (default: user cache directory).")
    parser.add_argument("--version", action="version", version=f"%(prog)s {VERSION}")
    return parser.parse_args(argv)


class QuranPlayerApp:
    """Wires the services together and runs the interactive command loop."""

    def __init__(self, loop, data_handler: QuranDataHandler, settings_store, engine):
        self.loop = loop
        self.data_handler = data_handler
        self.settings = Settings(settings_store)
        self.resume_store = ResumeStateStore(settings_store)
        self.resolver = PlaybackItemResolver(data_handler)
        self.engine = engine
        self.sequencer = PlaybackSequencer(
            data_handler, self.settings, engine, self.resolver, self.resume_store, loop)
        self.transport = TransportIntegration(self.sequencer)
        self.verse_index = VerseIndex(data_handler, self.settings)
        self._last_title: Optional[str] = None
        self.sequencer.add_listener(self._on_state_changed)

    # --- Output ---
    def _on_state_changed(self, sequencer: PlaybackSequencer):
        if sequencer.show_connectivity_alert:
            print(f"{Fore.RED}⚠ Could not load the recitation. Check your internet connection.{Style.RESET_ALL}")
            sequencer.clear_connectivity_alert()
            return
        title = sequencer.now_playing_title
        if title and title != self._last_title:
            line = f"{Fore.GREEN}▶ {title}{Style.RESET_ALL}"
            if sequencer.now_playing_artist:
                line += f" {Style.DIM}{sequencer.now_playing_artist}{Style.RESET_ALL}"
            subtitle = sequencer.custom_range_subtitle
            if subtitle:
                line += f"\n  {Fore.CYAN}{subtitle}{Style.RESET_ALL}"
            print(line)
        self._last_title = title

    def show_help(self):
        width = max(len(cmd) for cmd, _ in COMMANDS)
        print(Fore.RED + "╭─ " + Style.BRIGHT + Fore.GREEN + "Commands")
        for cmd, desc in COMMANDS:
            print(Fore.RED + f"├─ {Fore.CYAN}{cmd.ljust(width)}{Fore.WHITE} : {desc}{Style.RESET_ALL}")
        print(Fore.RED + "╰────────────────────────────────────────")

    def show_status(self):
        session = self.sequencer.session
        if session.mode is PlaybackMode.IDLE:
            print(f"{Fore.YELLOW}Nothing is playing.{Style.RESET_ALL}")
        elif session.is_loading:
            print(f"{Fore.YELLOW}Loading...{Style.RESET_ALL}")
        else:
            state = "Playing" if session.is_playing else "Paused"
            duration = self.sequencer.duration or 0
            print(f"{Fore.GREEN}{state}: {self.sequencer.now_playing_title}{Style.RESET_ALL} "
                  f"{Fore.CYAN}{format_time(self.sequencer.elapsed)}{Fore.WHITE}/{Fore.CYAN}{format_time(duration)}")
        print(f"{Fore.WHITE}Reciter: {self.settings.reciter} • After chapter: {self.settings.recite_type.value}"
              f" • Style: {normalize_style(self.settings.display_style) or 'Hafs'}{Style.RESET_ALL}")
        if self.settings.last_read_chapter:
            print(f"{Fore.WHITE}Last read: {self.settings.last_read_chapter}:{self.settings.last_read_verse}"
                  f"{Style.RESET_ALL}")
        favorites = self.settings.favorite_chapters
        if favorites:
            print(f"{Fore.WHITE}Favourites: {', '.join(str(c) for c in favorites)}{Style.RESET_ALL}")

    def show_search(self, query: str, limit: int = 10):
        results = self.verse_index.search(query, limit=limit)
        if not results:
            print(f"{Fore.YELLOW}No verses found for '{query}'.{Style.RESET_ALL}")
            return
        style = self.settings.display_style
        for entry in results:
            verse = self.data_handler.verse(entry.chapter, entry.verse)
            chapter = self.data_handler.chapter(entry.chapter)
            print(f"{Fore.RED}{chapter.name_transliteration} {entry.id}{Style.RESET_ALL}")
            print(f"  {Fore.WHITE}{self.data_handler.fix_arabic_text(verse.text_for_style(style))}")
            if verse.text_english_saheeh:
                print(f"  {Style.DIM}{verse.text_english_saheeh}{Style.RESET_ALL}")
        total = len(self.verse_index.search_all(query))
        if total > len(results):
            print(f"{Fore.YELLOW}... {total - len(results)} more.{Style.RESET_ALL}")

    # --- Commands ---
    def handle_command(self, line: str) -> bool:
        """Run one command line. Returns False when the user asked to quit."""
        parts = line.strip().split()
        if not parts:
            return True
        cmd, args = parts[0].lower(), parts[1:]

        try:
            if cmd in ("quit", "exit", "q"):
                self.sequencer.stop()
                return False
            elif cmd in ("help", "h", "?"):
                self.show_help()
            elif cmd in ("play", "p"):
                self._play_chapter(args)
            elif cmd == "last":
                self._play_last()
            elif cmd in ("verse", "v"):
                self._play_verse(args)
            elif cmd in ("range", "r"):
                self._play_range(args)
            elif cmd == "bismillah":
                self.sequencer.play_bismillah()
            elif cmd == "pause":
                self.sequencer.pause()
            elif cmd == "resume":
                self.sequencer.resume()
            elif cmd == "stop":
                self.sequencer.stop()
            elif cmd == "seek":
                self.sequencer.seek(float(args[0]))
            elif cmd in ("back", "b"):
                self.sequencer.skip_backward()
            elif cmd in ("next", "n"):
                self.sequencer.skip_forward()
            elif cmd in ("search", "s"):
                self.show_search(" ".join(args))
            elif cmd == "style":
                self._set_style(args)
            elif cmd == "reciter":
                self._set_reciter(args)
            elif cmd == "policy":
                self._set_policy(args)
            elif cmd == "fav":
                self._favorites(args)
            elif cmd == "reverse":
                self.data_handler.toggle_arabic_reversal()
                state = "on" if self.data_handler.arabic_reversed else "off"
                print(f"{Fore.GREEN}Arabic reversal {state}.{Style.RESET_ALL}")
            elif cmd == "status":
                self.show_status()
            else:
                print(f"{Fore.YELLOW}Unknown command '{cmd}'. Type 'help' for the list.{Style.RESET_ALL}")
        except (IndexError, ValueError):
            print(f"{Fore.YELLOW}Invalid arguments for '{cmd}'. Type 'help' for usage.{Style.RESET_ALL}")
        return True

    def _play_chapter(self, args: List[str]):
        chapter = int(args[0])
        repeat = int(args[1]) if len(args) > 1 else 1
        info = self.data_handler.chapter(chapter)
        if info is None:
            print(f"{Fore.YELLOW}Chapter must be between 1 and {TOTAL_CHAPTERS}.{Style.RESET_ALL}")
            return
        self.sequencer.play_chapter(chapter, info.name_transliteration, repeat_count=repeat)

    def _play_last(self):
        record = self.resume_store.load()
        if record is None:
            print(f"{Fore.YELLOW}Nothing listened yet.{Style.RESET_ALL}")
            return
        print(f"{Fore.CYAN}Continuing {record.chapter_name} at {format_time(record.elapsed_seconds)}{Style.RESET_ALL}")
        self.sequencer.play_chapter(record.chapter_number, record.chapter_name, resume_from_last_position=True)

    def _play_verse(self, args: List[str]):
        chapter, verse = int(args[0]), int(args[1])
        rest = args[2:]
        continue_recitation = bool(rest) and rest[0].lower() in ("c", "continue")
        if continue_recitation:
            rest = rest[1:]
        repeat = int(rest[0]) if rest else 1
        self.sequencer.play_verse(chapter, verse, continue_recitation=continue_recitation, repeat_count=repeat)
        info = self.data_handler.chapter(chapter)
        if info is not None and 1 <= verse <= info.verse_count:
            self.settings.last_read_chapter = chapter
            self.settings.last_read_verse = verse

    def _play_range(self, args: List[str]):
        chapter, start, end = int(args[0]), int(args[1]), int(args[2])
        each = int(args[3]) if len(args) > 3 else 1
        section = int(args[4]) if len(args) > 4 else 1
        if not (1 <= each <= 20 and 1 <= section <= 20):
            print(f"{Fore.YELLOW}Repeats must be between 1 and 20.{Style.RESET_ALL}")
            return
        self.sequencer.play_custom_range(chapter, start, end, each, section)

    def _set_style(self, args: List[str]):
        if args:
            name = " ".join(args)
            if normalize_style(name) and style_field(name) is None:
                known = ", ".join(["Hafs"] + [names[0] for _, names in STYLE_FIELDS])
                print(f"{Fore.YELLOW}Unknown recitation style '{name}'. Choose one of: {known}.{Style.RESET_ALL}")
                return
            self.settings.display_style = normalize_style(name)
        print(f"{Fore.GREEN}Recitation style: {normalize_style(self.settings.display_style) or 'Hafs'}{Style.RESET_ALL}")

    def _favorites(self, args: List[str]):
        if args:
            chapter = int(args[0])
            info = self.data_handler.chapter(chapter)
            if info is None:
                print(f"{Fore.YELLOW}Chapter must be between 1 and {TOTAL_CHAPTERS}.{Style.RESET_ALL}")
                return
            self.settings.toggle_favorite(chapter)
            verb = "Added" if self.settings.is_favorite(chapter) else "Removed"
            print(f"{Fore.GREEN}{verb} {info.name_transliteration} ({chapter}).{Style.RESET_ALL}")
            return
        favorites = self.settings.favorite_chapters
        if not favorites:
            print(f"{Fore.YELLOW}No favourite chapters yet.{Style.RESET_ALL}")
            return
        for chapter in favorites:
            info = self.data_handler.chapter(chapter)
            name = info.name_transliteration if info else "?"
            print(f"  {Fore.CYAN}{chapter:3d}{Fore.WHITE} {name}{Style.RESET_ALL}")

    def _set_reciter(self, args: List[str]):
        if args:
            name = " ".join(args)
            match = self.resolver.find_reciter(name)
            if match is None:
                lowered = name.lower()
                match = next((r for r in self.resolver.reciters if lowered in r.name.lower()), None)
            if match is None:
                print(f"{Fore.YELLOW}Unknown reciter '{name}'.{Style.RESET_ALL}")
                for r in self.resolver.reciters:
                    print(f"  {Fore.CYAN}{r.name}{Style.RESET_ALL}")
                return
            self.settings.reciter = match.name
        print(f"{Fore.GREEN}Reciter: {self.settings.reciter}{Style.RESET_ALL}")

    def _set_policy(self, args: List[str]):
        if args:
            policy = POLICY_ALIASES.get(args[0].lower())
            if policy is None:
                print(f"{Fore.YELLOW}Choose one of: next, previous, end.{Style.RESET_ALL}")
                return
            self.settings.recite_type = policy
        print(f"{Fore.GREEN}After a chapter: {self.settings.recite_type.value}{Style.RESET_ALL}")

    async def run(self):
        print(Style.BRIGHT + Fore.GREEN + f"Quran Player {VERSION}" + Style.RESET_ALL)
        self.show_help()
        while True:
            try:
                line = await self.loop.run_in_executor(None, input, Fore.RED + "  ❯ " + Fore.WHITE)
            except EOFError:
                self.sequencer.stop()
                break
            if not self.handle_command(line):
                break


def main(argv: Optional[List[str]] = None) -> int:
    init(autoreset=True)
    args = parse_args(argv)

    try:
        data_handler = QuranDataHandler(args.corpus, args.qiraat_dir)
    except CorpusLoadError as e:
        print(f"{Fore.RED}{e}{Style.RESET_ALL}", file=sys.stderr)
        return 1

    # Imported here so corpus errors surface before pygame starts the mixer
    from .audio_manager import PygameMediaEngine

    loop = asyncio.new_event_loop()
    asyncio.set_event_loop(loop)
    try:
        engine = PygameMediaEngine(loop=loop, cache_dir=args.cache_dir)
        app = QuranPlayerApp(loop, data_handler, JsonFileStore(args.settings), engine)
        loop.run_until_complete(app.run())
    except KeyboardInterrupt:
        print(Style.BRIGHT + Fore.YELLOW + "\n⚠ Interrupted, exiting.")
        return 1
    finally:
        loop.close()
    return 0


if __name__ == "__main__":
    sys.exit(main())
