import sys

from nicpurge.modules.nicpurge_cli import main

sys.exit(main())
