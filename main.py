"""
analit - Main Entry Point

Example usage:
    python main.py full path/to/audio.wav
    python main.py --config config/analit.yaml compare a.wav b.wav
"""

import sys

from analit.cli import main

if __name__ == "__main__":
    sys.exit(main())
