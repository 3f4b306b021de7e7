import sys

from uvscaffold.pipeline import main

sys.exit(main())
