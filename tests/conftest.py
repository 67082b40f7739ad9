import os

# The API module builds its store at import time
os.environ.setdefault("FORMCOACH_STORE", "memory")
