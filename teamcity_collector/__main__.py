import sys

from teamcity_collector.cli import main

sys.exit(main())
