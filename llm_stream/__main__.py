import sys

from llm_stream.cli import main

sys.exit(main())
