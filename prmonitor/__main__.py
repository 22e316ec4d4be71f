import sys

from prmonitor.main import main

sys.exit(main())
