import sys

from winsdk.cli import main

sys.exit(main())
