"""Persistence — on-disk query cache files and the plugin candidate cache."""
