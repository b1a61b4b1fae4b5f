from wkhtmltos3.cli import main

raise SystemExit(main())
