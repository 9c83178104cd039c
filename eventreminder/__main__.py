import sys

from eventreminder.main import main

sys.exit(main())
