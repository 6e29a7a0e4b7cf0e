"""Entry point for ``python -m swiftkit``."""

from swiftkit.cli.parser import main

if __name__ == "__main__":
    main()
