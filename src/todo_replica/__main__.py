"""Entry point for ``python -m todo_replica``."""

from todo_replica.cli import main

if __name__ == "__main__":
    main()
