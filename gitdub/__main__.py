"""python -m gitdub"""

import sys

from gitdub.cli import main

sys.exit(main())
