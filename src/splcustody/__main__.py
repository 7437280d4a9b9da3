import sys

from splcustody.main import main

sys.exit(main())
