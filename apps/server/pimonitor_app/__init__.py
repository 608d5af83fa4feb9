"""PiMonitor command line and web front end."""
