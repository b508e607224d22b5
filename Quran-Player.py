# Quran-Player.py
import sys

from quran_player.cli import main

if __name__ == "__main__":
    sys.exit(main())
