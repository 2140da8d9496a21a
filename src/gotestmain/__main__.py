import sys

from gotestmain.cli import main

sys.exit(main())
