"""Entry point for 'python -m systemrpg' command.

This module allows the SystemRPG CLI to be invoked using
'python -m systemrpg'.
"""

from systemrpg.cli import main

if __name__ == "__main__":
    main()
