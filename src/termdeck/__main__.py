"""Module entrypoint for `python -m termdeck`."""

from termdeck.cli import run

if __name__ == "__main__":
    raise SystemExit(run())
