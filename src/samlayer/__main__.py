import sys

from samlayer.cli import main

sys.exit(main())
