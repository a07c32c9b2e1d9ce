"""Allow ``python -m mii``."""

from mii.cli import main

raise SystemExit(main())
