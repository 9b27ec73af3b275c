# Make `import proxy_gateway` resolve to this checkout when pytest is run
# from the repository root without an editable install.
import os
import sys

SERVICE_ROOT = os.path.dirname(__file__)

if SERVICE_ROOT not in sys.path:
    sys.path.insert(0, SERVICE_ROOT)
