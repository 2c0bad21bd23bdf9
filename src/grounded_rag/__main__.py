"""Allow ``python -m grounded_rag`` to start the interactive shell."""

from grounded_rag.cli import main

raise SystemExit(main())
