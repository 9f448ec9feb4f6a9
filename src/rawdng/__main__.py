from rawdng.cli import main

raise SystemExit(main())
