import sys

from portfolio_backend.server import main

if __name__ == "__main__":
    sys.exit(main())
