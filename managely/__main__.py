import sys

from managely.cli import main

sys.exit(main())
