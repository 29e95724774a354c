"""Allow running Chronoscribe with ``python -m chronoscribe``."""

from .cli import run

if __name__ == "__main__":
    run()
