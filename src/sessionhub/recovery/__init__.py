"""Error classification and recovery strategies for failed execution phases."""
