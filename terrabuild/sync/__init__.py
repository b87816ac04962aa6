"""FTP connection, sync schedule and run history records."""
