import sys

from eqmatch.cli import main

sys.exit(main())
