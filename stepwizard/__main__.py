import sys

from stepwizard.cli import main

sys.exit(main())
