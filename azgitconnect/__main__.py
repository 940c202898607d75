"""Allow ``python -m azgitconnect``."""

from __future__ import annotations

import sys

from azgitconnect.cli import main

sys.exit(main())
