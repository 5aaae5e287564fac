"""Allow running as ``python -m render_deploy``."""

from render_deploy.cli import main

if __name__ == "__main__":
    main()
