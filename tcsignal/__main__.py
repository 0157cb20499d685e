import sys

from tcsignal.cli import main

sys.exit(main())
