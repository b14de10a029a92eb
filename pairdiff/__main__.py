"""Allow ``python -m pairdiff``."""

import sys

from pairdiff.main import main

sys.exit(main())
