"""Allow ``python -m tracefetch``."""

from tracefetch.cli import main

raise SystemExit(main())
