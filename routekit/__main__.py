import sys

from routekit.cli import main

sys.exit(main())
