from attendant.cli import main

raise SystemExit(main())
