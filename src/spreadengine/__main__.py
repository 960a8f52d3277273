"""Allow ``python -m spreadengine``."""

import sys

from spreadengine.cli import main

sys.exit(main())
