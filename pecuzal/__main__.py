"""Entry point for python -m pecuzal."""

import sys

from pecuzal.cli import main

sys.exit(main())
