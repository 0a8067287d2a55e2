"""Allow running as: python -m queue_check"""

import sys

from .cli import main

sys.exit(main())
