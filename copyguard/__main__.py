"""``python -m copyguard`` entry point."""

from copyguard.main import main

if __name__ == "__main__":
    raise SystemExit(main())
