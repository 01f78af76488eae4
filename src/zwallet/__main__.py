"""Allow ``python -m zwallet``."""

import sys

from zwallet.cli import main

sys.exit(main())
