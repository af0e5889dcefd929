"""Allow ``python -m repo_monitor``."""

from repo_monitor.cli import main

if __name__ == "__main__":
    main()
