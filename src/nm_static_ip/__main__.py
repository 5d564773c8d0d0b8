"""Entry point for python -m nm_static_ip"""

import sys

from .cli import main

if __name__ == '__main__':
    sys.exit(main())
