import sys

from strategy_pipeline.cli import main

sys.exit(main())
