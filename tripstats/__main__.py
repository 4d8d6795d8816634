"""Allow `python -m tripstats`."""

from tripstats.cli.cli import main

if __name__ == "__main__":
    main()
