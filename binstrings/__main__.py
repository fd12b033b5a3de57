"""Allow ``python -m binstrings``."""

import sys

from binstrings.cli import main

sys.exit(main())
