"""Module entrypoint for ``python -m npmx_connector``."""

from __future__ import annotations

from npmx_connector.cli import main

if __name__ == "__main__":
    main()
