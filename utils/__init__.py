# Utility package: logging setup, configuration checks, background workers and payload helpers
