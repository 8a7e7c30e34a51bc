"""
Entrypoint for the actor engine admin CLI.

Equivalent to ``python -m actor_engine.cli``.
"""

import sys

from actor_engine.cli import main

if __name__ == "__main__":
    sys.exit(main())
