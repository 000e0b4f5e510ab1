import sys

from autoskills.cli import main

raise SystemExit(main(sys.argv[1:]))
