from mpcremote.app import main

raise SystemExit(main())
