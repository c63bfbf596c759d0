"""Entry point for `python -m ihht`."""

from ihht.cli import main

if __name__ == "__main__":
    main()
