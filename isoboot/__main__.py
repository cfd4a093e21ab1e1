import sys

from isoboot.main import main


sys.exit(main())
