import sys

from dbcmd.cli import main

sys.exit(main())
