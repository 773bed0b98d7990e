import os

# Keep test runs free of tracer providers and instrumentation patches
os.environ.setdefault("DISABLE_TELEMETRY", "true")
