import sys

from idpstore.cli import main

sys.exit(main())
