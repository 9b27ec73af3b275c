import sys

from proxy_gateway.main import main

sys.exit(main())
