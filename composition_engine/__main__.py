"""Allow running as: python -m composition_engine"""

from composition_engine.main import run, serve
import sys

if __name__ == "__main__":
    if "--serve" in sys.argv:
        serve()
    else:
        run(*sys.argv[1:3])
