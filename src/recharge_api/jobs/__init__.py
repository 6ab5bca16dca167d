"""Job entrypoints invoked by the cron scheduler."""
