import sys

from patchscout.cli import main

sys.exit(main())
